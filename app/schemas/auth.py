"""Pydantic schemas for verification and password reset endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class EmailRequest(BaseModel):
    email: str = Field(
        ...,
        min_length=3,
        max_length=320,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Account email address.",
    )


class VerifyCodeRequest(EmailRequest):
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^[0-9]{6}$",
        description="6-digit verification code from the email.",
    )


class ResetPasswordRequest(BaseModel):
    new_password: str = Field(
        ...,
        min_length=6,
        max_length=128,
        description="New account password (at least 6 characters).",
    )


class MessageResponse(BaseModel):
    message: str


class VerificationIssuedResponse(MessageResponse):
    expires_in: int = Field(..., description="Seconds until the code expires.")
    reused: bool = Field(False, description="An unexpired code was re-sent instead of a new one.")


class VerifyCodeResponse(MessageResponse):
    verified: bool


class VerificationStatusResponse(BaseModel):
    has_verification: bool
    can_resend: bool
    expires_in: int | None = Field(None, description="Seconds until the current code expires.")


class ResetTokenResponse(BaseModel):
    valid: bool
    email: str | None = None


class ResetCompletedResponse(MessageResponse):
    user_id: str

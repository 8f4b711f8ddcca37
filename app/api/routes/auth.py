"""Email verification and password reset endpoints.

Thin glue over VerificationService: every user-facing message and number
(attempts left, wait time) comes from the service result. Codes and tokens
only ever leave the process through the mailer.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from app.adapters.mail import AbstractMailer, get_mailer
from app.adapters.users import AbstractUserDirectory, get_user_directory
from app.core.config import settings
from app.core.errors import (
    RateLimitAppError,
    ServiceUnavailableAppError,
    ValidationAppError,
)
from app.schemas.auth import (
    EmailRequest,
    MessageResponse,
    ResetCompletedResponse,
    ResetPasswordRequest,
    ResetTokenResponse,
    VerificationIssuedResponse,
    VerificationStatusResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from app.services.verification_service import (
    VerificationOutcome,
    VerificationService,
    get_verification_service,
)

router = APIRouter(prefix="/auth", tags=["Auth"])

RESET_REQUESTED_MESSAGE = "If an account with this email exists, a password reset link has been sent."


def _unavailable(code: str) -> ServiceUnavailableAppError:
    return ServiceUnavailableAppError(
        code=code,
        message="This service is temporarily unavailable. Please try again shortly.",
    )


@router.post(
    "/verification",
    response_model=VerificationIssuedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_verification_code(
    body: EmailRequest,
    verification: VerificationService = Depends(get_verification_service),
    mailer: AbstractMailer = Depends(get_mailer),
) -> VerificationIssuedResponse:
    """Issue a new verification code (used right after registration)."""
    code = await verification.create_email_verification(body.email)
    await mailer.send_verification_code(body.email, code)
    return VerificationIssuedResponse(
        message="Verification code sent! Please check your email.",
        expires_in=settings.verification.code_ttl_seconds,
    )


@router.post("/verification/confirm", response_model=VerifyCodeResponse)
async def confirm_verification_code(
    body: VerifyCodeRequest,
    verification: VerificationService = Depends(get_verification_service),
) -> VerifyCodeResponse:
    """Check a submitted code; a code works at most once."""
    result = await verification.check_email_code(body.email, body.code)

    if result.verified:
        return VerifyCodeResponse(verified=True, message="Email verified successfully!")

    if result.outcome is VerificationOutcome.UNAVAILABLE:
        raise _unavailable("verification_unavailable")

    if result.outcome is VerificationOutcome.LOCKED:
        raise RateLimitAppError(
            code="too_many_attempts",
            message="Too many incorrect attempts. Please request a new verification code.",
            details={"attempts_remaining": 0, "hint": "request_new_code"},
        )

    if result.outcome is VerificationOutcome.INVALID_CODE:
        remaining = result.attempts_remaining or 0
        message = "Invalid verification code."
        if remaining == 0:
            message += " Please request a new verification code."
        raise ValidationAppError(
            code="invalid_verification_code",
            message=message,
            details={"attempts_remaining": remaining},
        )

    raise ValidationAppError(
        code="verification_expired",
        message="Invalid or expired verification code. Please request a new one.",
        details={"hint": "request_new_code"},
    )


@router.post("/verification/resend", response_model=VerificationIssuedResponse)
async def resend_verification_code(
    body: EmailRequest,
    verification: VerificationService = Depends(get_verification_service),
    mailer: AbstractMailer = Depends(get_mailer),
) -> VerificationIssuedResponse:
    """Resend the live code, or a new one, subject to the cooldown."""
    result = await verification.resend_verification_code(body.email)

    if result.unavailable:
        raise _unavailable("verification_unavailable")

    if not result.success or result.code is None:
        wait_time = result.wait_time_seconds or 0
        raise RateLimitAppError(
            code="resend_cooldown",
            message=f"Please wait {wait_time} seconds before requesting another code.",
            details={"retry_after": wait_time},
        )

    await mailer.send_verification_code(body.email, result.code)
    status_info = await verification.get_verification_status(body.email)
    return VerificationIssuedResponse(
        message="Verification code sent! Please check your email.",
        expires_in=status_info.expires_in or settings.verification.code_ttl_seconds,
        reused=result.reused,
    )


@router.get("/verification/status", response_model=VerificationStatusResponse)
async def verification_status(
    email: str = Query(..., min_length=3, max_length=320),
    verification: VerificationService = Depends(get_verification_service),
) -> VerificationStatusResponse:
    result = await verification.get_verification_status(email)
    return VerificationStatusResponse(
        has_verification=result.has_verification,
        can_resend=result.can_resend,
        expires_in=result.expires_in,
    )


@router.post(
    "/password-reset",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_password_reset(
    body: EmailRequest,
    verification: VerificationService = Depends(get_verification_service),
    users: AbstractUserDirectory = Depends(get_user_directory),
    mailer: AbstractMailer = Depends(get_mailer),
) -> MessageResponse:
    """Start a password reset; refused while another reset is outstanding."""
    user_id = await users.find_user_id(body.email)
    if user_id is None:
        # Same answer as success so the endpoint cannot enumerate accounts.
        return MessageResponse(message=RESET_REQUESTED_MESSAGE)

    if await verification.has_pending_reset(body.email):
        raise RateLimitAppError(
            code="reset_already_pending",
            message=(
                "A password reset link has already been sent. "
                "Please check your email or wait before requesting another."
            ),
        )

    token = await verification.create_password_reset(body.email, user_id)
    await mailer.send_password_reset(body.email, token)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.get("/password-reset/{token}", response_model=ResetTokenResponse)
async def check_reset_token(
    token: str,
    verification: VerificationService = Depends(get_verification_service),
) -> ResetTokenResponse:
    """Tell the reset page whether a token is still usable (does not consume it)."""
    result = await verification.verify_reset_token(token)
    if result.unavailable:
        raise _unavailable("password_reset_unavailable")
    if not result.valid:
        raise ValidationAppError(code="invalid_reset_token", message="Invalid or expired reset token")
    return ResetTokenResponse(valid=True, email=result.email)


@router.post("/password-reset/{token}/consume", response_model=ResetCompletedResponse)
async def complete_password_reset(
    token: str,
    body: ResetPasswordRequest,
    verification: VerificationService = Depends(get_verification_service),
    users: AbstractUserDirectory = Depends(get_user_directory),
) -> ResetCompletedResponse:
    """Consume the token, then hand the new password to the user directory."""
    result = await verification.consume_reset_token(token)
    if result.unavailable:
        raise _unavailable("password_reset_unavailable")
    if not result.valid or result.user_id is None:
        raise ValidationAppError(code="invalid_reset_token", message="Invalid or expired reset token")

    if not await users.update_password(result.user_id, body.new_password):
        raise ValidationAppError(code="user_not_found", message="User not found")

    return ResetCompletedResponse(
        message="Password reset successful! You can now log in with your new password.",
        user_id=result.user_id,
    )

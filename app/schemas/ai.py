"""Pydantic schemas for the metered AI chat proxy."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1, max_length=20000)


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(..., min_length=1, max_length=50)
    model: str | None = Field(
        None,
        max_length=100,
        description="Provider model name; the configured default when omitted.",
    )
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, ge=1, le=8192)


class QuotaInfo(BaseModel):
    plan: str
    count: int
    limit: int
    remaining: int
    reset_at: int = Field(..., description="UNIX epoch seconds when today's counter resets.")
    degraded: bool = Field(False, description="Usage could not be counted (cache unavailable).")


class ChatResponse(BaseModel):
    reply: str
    model: str
    usage: dict[str, int] = Field(default_factory=dict)
    quota: QuotaInfo

"""Metered AI chat proxy.

Each request is counted against the caller's daily quota for the chosen
model before it is forwarded to the provider.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Query

from app.adapters.llm import AbstractLLMClient, get_llm_client
from app.core.auth import CallerIdentity, get_caller_identity, verify_api_key
from app.core.config import settings
from app.core.errors import LLMAppError, RateLimitAppError
from app.schemas.ai import ChatRequest, ChatResponse, QuotaInfo
from app.services.quota_service import (
    QuotaDecision,
    QuotaEnforcer,
    QuotaReason,
    get_quota_enforcer,
    limit_for_plan,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"], dependencies=[Depends(verify_api_key)])


def _scope(model: str | None) -> str:
    return f"ai:{model or settings.llm.model}"


def _quota_info(plan: str, decision: QuotaDecision) -> QuotaInfo:
    return QuotaInfo(
        plan=plan,
        count=decision.count,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_at=decision.reset_at,
        degraded=decision.reason is QuotaReason.CACHE_UNAVAILABLE,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    caller: CallerIdentity = Depends(get_caller_identity),
    quota: QuotaEnforcer = Depends(get_quota_enforcer),
    llm: AbstractLLMClient = Depends(get_llm_client),
) -> ChatResponse:
    """Forward a chat conversation to the provider within the caller's quota."""
    decision = await quota.check_and_increment(
        caller.identity,
        _scope(body.model),
        limit_for_plan(caller.plan),
        suggest_upgrade=caller.plan == settings.quota.lowest_tier,
    )
    if not decision.allowed:
        raise RateLimitAppError(
            code="quota_exceeded",
            message=decision.message,
            details={
                "count": decision.count,
                "limit": decision.limit,
                "plan": caller.plan,
                "retry_after": max(0, decision.reset_at - int(time.time())),
                **({"hint": "upgrade_plan"} if decision.suggest_upgrade else {}),
            },
        )

    options: dict[str, float | int] = {}
    if body.temperature is not None:
        options["temperature"] = body.temperature
    if body.max_tokens is not None:
        options["max_tokens"] = body.max_tokens

    try:
        reply = await llm.chat(
            [message.model_dump() for message in body.messages],
            model=body.model,
            **options,
        )
    except RuntimeError as exc:
        logger.error("ai.provider_failed", extra={"error_msg": str(exc), "scope": _scope(body.model)})
        raise LLMAppError(
            code="ai_provider_error",
            message="The AI provider failed to answer. Please try again later.",
        ) from exc

    return ChatResponse(
        reply=reply.content,
        model=reply.model,
        usage=reply.usage,
        quota=_quota_info(caller.plan, decision),
    )


@router.get("/usage", response_model=QuotaInfo)
async def usage(
    model: str | None = Query(None, max_length=100),
    caller: CallerIdentity = Depends(get_caller_identity),
    quota: QuotaEnforcer = Depends(get_quota_enforcer),
) -> QuotaInfo:
    """Today's usage for the caller and model, without counting a request."""
    decision = await quota.get_usage(caller.identity, _scope(model), limit_for_plan(caller.plan))
    return _quota_info(caller.plan, decision)

"""Per-identity daily quota for metered actions (AI requests).

One integer counter per ``(scope, identity, UTC date)`` lives in the shared
cache. The date is part of the key, so a new day starts a new counter and
old ones simply expire. Tier ceilings come from the caller.

If the cache is unavailable the enforcer fails open: the request is allowed
and the condition is logged.
"""

from __future__ import annotations

import calendar
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from app.core.config import QuotaSettings, settings
from app.core.logging import hash_for_log
from app.services.cache_service import BudgetedCacheClient, CacheKeys, get_cache_client

logger = logging.getLogger(__name__)


class QuotaReason(str, Enum):
    ALLOWED = "allowed"
    LIMIT_REACHED = "limit_reached"
    CACHE_UNAVAILABLE = "cache_unavailable"


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check, with what a user-facing message needs.

    Attributes:
        allowed: Whether the action may proceed.
        count: Uses counted today (including this one when allowed).
        limit: Ceiling applied.
        reason: Why the decision was made.
        reset_at: UNIX epoch seconds of the next UTC midnight.
        suggest_upgrade: Caller is on the lowest tier.
    """

    allowed: bool
    count: int
    limit: int
    reason: QuotaReason
    reset_at: int
    suggest_upgrade: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def message(self) -> str:
        if self.allowed:
            return f"{self.remaining} of {self.limit} requests left today."
        text = f"Daily request limit reached ({self.count}/{self.limit}). Try again tomorrow."
        if self.suggest_upgrade:
            text += " Upgrade to Pro for a higher daily limit."
        return text


def limit_for_plan(plan: str, quota_settings: QuotaSettings | None = None) -> int:
    """Daily ceiling for a subscription plan; unknown plans get the free limit."""
    cfg = quota_settings or settings.quota
    if plan.lower() == "pro":
        return cfg.pro_daily_limit
    return cfg.free_daily_limit


class QuotaEnforcer:
    """Counts and bounds metered actions per identity and scope per day."""

    def __init__(
        self,
        cache: BudgetedCacheClient,
        *,
        clock: Callable[[], float] = time.time,
        counter_ttl_seconds: int | None = None,
    ) -> None:
        self._cache = cache
        self._clock = clock
        self._counter_ttl = counter_ttl_seconds or settings.quota.counter_ttl_seconds

    def _today(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _key(self, identity: str, scope: str) -> str:
        return CacheKeys.quota_counter(scope, identity, self._today().date().isoformat())

    def _reset_at(self) -> int:
        tomorrow = self._today().date() + timedelta(days=1)
        return calendar.timegm(tomorrow.timetuple())

    async def _current_count(self, key: str) -> int | None:
        """Today's count (0 when absent) or None when the cache is down."""
        result = await self._cache.fetch(key)
        if result.is_unavailable:
            return None
        if not result.is_hit:
            return 0
        try:
            return int(result.value)
        except (TypeError, ValueError):
            return 0

    def _fail_open(self, identity: str, scope: str, limit: int, count: int) -> QuotaDecision:
        logger.warning(
            "quota.cache_unavailable",
            extra={"identity_hash": hash_for_log(identity), "scope": scope, "limit": limit},
        )
        return QuotaDecision(
            allowed=True,
            count=count,
            limit=limit,
            reason=QuotaReason.CACHE_UNAVAILABLE,
            reset_at=self._reset_at(),
        )

    async def check_and_increment(
        self,
        identity: str,
        scope: str,
        limit: int,
        *,
        suggest_upgrade: bool = False,
    ) -> QuotaDecision:
        """Count one use of ``scope`` by ``identity`` unless today's limit is hit.

        Args:
            identity: Who is acting (user id, hashed API key).
            scope: What is metered (e.g. ``ai:gpt-4o``).
            limit: Ceiling for the caller's tier.
            suggest_upgrade: Whether a denial should suggest upgrading.

        Returns:
            QuotaDecision describing the outcome.
        """
        key = self._key(identity, scope)

        count = await self._current_count(key)
        if count is None:
            return self._fail_open(identity, scope, limit, 0)

        if count >= limit:
            logger.warning(
                "quota.denied",
                extra={
                    "identity_hash": hash_for_log(identity),
                    "scope": scope,
                    "count": count,
                    "limit": limit,
                },
            )
            return QuotaDecision(
                allowed=False,
                count=count,
                limit=limit,
                reason=QuotaReason.LIMIT_REACHED,
                reset_at=self._reset_at(),
                suggest_upgrade=suggest_upgrade,
            )

        new_count = await self._cache.increment(key)
        if new_count is None:
            return self._fail_open(identity, scope, limit, count + 1)

        if new_count == 1 and not await self._cache.expire(key, self._counter_ttl):
            logger.warning("quota.expire_failed", extra={"scope": scope})

        # Lost a race with a concurrent request that took the last unit.
        if new_count > limit:
            logger.warning(
                "quota.denied",
                extra={
                    "identity_hash": hash_for_log(identity),
                    "scope": scope,
                    "count": new_count,
                    "limit": limit,
                },
            )
            return QuotaDecision(
                allowed=False,
                count=limit,
                limit=limit,
                reason=QuotaReason.LIMIT_REACHED,
                reset_at=self._reset_at(),
                suggest_upgrade=suggest_upgrade,
            )

        logger.info(
            "quota.allowed",
            extra={
                "identity_hash": hash_for_log(identity),
                "scope": scope,
                "count": new_count,
                "limit": limit,
            },
        )
        return QuotaDecision(
            allowed=True,
            count=new_count,
            limit=limit,
            reason=QuotaReason.ALLOWED,
            reset_at=self._reset_at(),
        )

    async def get_usage(self, identity: str, scope: str, limit: int) -> QuotaDecision:
        """Read-only snapshot of today's usage (does not count a use)."""
        count = await self._current_count(self._key(identity, scope))
        if count is None:
            return self._fail_open(identity, scope, limit, 0)
        return QuotaDecision(
            allowed=count < limit,
            count=count,
            limit=limit,
            reason=QuotaReason.ALLOWED if count < limit else QuotaReason.LIMIT_REACHED,
            reset_at=self._reset_at(),
        )


def get_quota_enforcer() -> QuotaEnforcer:
    """FastAPI dependency returning an enforcer bound to the shared cache client."""
    return QuotaEnforcer(get_cache_client())

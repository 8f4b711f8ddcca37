"""Budgeted client for the shared remote cache.

This is the only component allowed to talk to the remote store. It:
- Wraps every value in an envelope carrying its own expiry (lazy expiry)
- Spends one unit of a daily request budget per store command
- Converts budget exhaustion, transport failures, timeouts and malformed
  values into cache misses so callers fail open instead of crashing

Callers that must tell "not there" from "cache is down" use ``fetch`` /
``fetch_many`` and inspect the ``CacheStatus``; everyone else uses the
value-or-None conveniences.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from app.adapters.cache.base import AbstractCacheTransport
from app.adapters.cache.factory import create_cache_transport
from app.core.config import CacheSettings, settings
from app.core.errors import CacheTransportError
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)

_UNAVAILABLE = object()


class CacheStatus(str, Enum):
    """Outcome of a cache read."""

    OK = "ok"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CacheResult:
    """Typed read result: a value, a miss, or an outage.

    Attributes:
        status: Whether the read hit, missed, or could not reach the store.
        value: The unwrapped value on a hit, otherwise None.
    """

    status: CacheStatus
    value: Any = None

    @property
    def is_hit(self) -> bool:
        return self.status is CacheStatus.OK

    @property
    def is_unavailable(self) -> bool:
        return self.status is CacheStatus.UNAVAILABLE


MISS = CacheResult(CacheStatus.MISS)
UNAVAILABLE = CacheResult(CacheStatus.UNAVAILABLE)


@dataclass
class RequestBudget:
    """Process-local daily allowance of store commands.

    Best effort: each process keeps its own count, so N instances can spend
    up to N times the limit between them.

    Attributes:
        limit_per_day: Maximum commands per calendar day.
        count: Commands spent on ``reset_date``.
        reset_date: ISO date (UTC) the count belongs to.
    """

    limit_per_day: int
    count: int = 0
    reset_date: str = ""

    def roll_over(self, today: str) -> bool:
        """Zero the count once when the calendar date changes."""
        if today != self.reset_date:
            self.count = 0
            self.reset_date = today
            return True
        return False

    def try_acquire(self, today: str) -> bool:
        """Reserve one unit for today; False when the budget is spent."""
        self.roll_over(today)
        if self.count >= self.limit_per_day:
            return False
        self.count += 1
        return True

    @property
    def remaining(self) -> int:
        return max(0, self.limit_per_day - self.count)


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def _key_label(key: str) -> str:
    """Loggable form of a key: namespace plus short hash of the rest."""
    namespace, _, rest = key.partition(":")
    if not rest:
        return hash_for_log(key)
    return f"{namespace}:{hash_for_log(rest)}"


class CacheKeys:
    """Namespaced key builders so features never collide in the shared store."""

    @staticmethod
    def user_profile(user_id: str) -> str:
        return f"u:{user_id}:p"

    @staticmethod
    def user_notes(user_id: str, page: int) -> str:
        return f"u:{user_id}:n:{page}"

    @staticmethod
    def subscription(user_id: str) -> str:
        return f"u:{user_id}:s"

    @staticmethod
    def ai_result(job_id: str) -> str:
        return f"ai:r:{job_id}"

    @staticmethod
    def quota_counter(scope: str, identity: str, date: str) -> str:
        return f"quota:{scope}:{identity}:{date}"


class BudgetedCacheClient:
    """Fail-open client for the remote key-value store.

    Every public method issues at most a fixed number of store commands and
    never raises for store-side problems.
    """

    def __init__(
        self,
        transport: AbstractCacheTransport,
        *,
        daily_request_limit: int = 9000,
        clock: Callable[[], float] = time.time,
        cache_settings: CacheSettings | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Command transport to the store.
            daily_request_limit: Store commands allowed per calendar day.
            clock: Time source returning UNIX time in seconds.
            cache_settings: TTLs for the convenience accessors.

        Raises:
            ValueError: If daily_request_limit is invalid.
        """
        if daily_request_limit < 1:
            raise ValueError("daily_request_limit must be >= 1")

        self._transport = transport
        self._clock = clock
        self._ttls = cache_settings or settings.cache
        self._budget = RequestBudget(limit_per_day=daily_request_limit)
        self._budget.roll_over(self._today())
        self._background: set[asyncio.Task[Any]] = set()

    def _today(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).date().isoformat()

    async def _call(self, command: Sequence[str], *, skip_budget: bool = False) -> Any:
        """Run one store command, returning ``_UNAVAILABLE`` instead of raising."""
        if not skip_budget:
            today = self._today()
            if self._budget.roll_over(today):
                logger.info("cache.budget_reset", extra={"date": today})
            if not self._budget.try_acquire(today):
                logger.warning(
                    "cache.budget_exhausted",
                    extra={
                        "command": command[0],
                        "limit_per_day": self._budget.limit_per_day,
                    },
                )
                return _UNAVAILABLE

        try:
            return await self._transport.execute(command)
        except CacheTransportError as exc:
            logger.error(
                "cache.command_failed",
                extra={"command": command[0], "error_msg": str(exc)},
            )
            return _UNAVAILABLE

    def _schedule_delete(self, key: str) -> None:
        task = asyncio.create_task(self.delete(key))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _unwrap(self, key: str, raw: Any) -> CacheResult:
        """Decode a stored value and apply lazy expiry.

        Shared by every read path. Expired envelopes are deleted without
        waiting; malformed values are reported as misses and left alone.
        """
        if raw is None:
            return MISS

        try:
            decoded = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except (TypeError, ValueError):
            logger.warning("cache.malformed_value", extra={"cache_key": _key_label(key)})
            return MISS

        # Counters written by INCRBY are bare integers, not envelopes.
        if isinstance(decoded, int) and not isinstance(decoded, bool):
            return CacheResult(CacheStatus.OK, decoded)

        if not isinstance(decoded, dict) or "data" not in decoded:
            logger.warning("cache.malformed_value", extra={"cache_key": _key_label(key)})
            return MISS

        expires_at = decoded.get("expiresAt") or 0
        if expires_at and _now_ms(self._clock) > expires_at:
            logger.debug("cache.lazy_expired", extra={"cache_key": _key_label(key)})
            self._schedule_delete(key)
            return MISS

        return CacheResult(CacheStatus.OK, decoded["data"])

    def _envelope(self, value: Any, ttl_seconds: int | None) -> str:
        now = _now_ms(self._clock)
        entry = {
            "data": value,
            "createdAt": now,
            "expiresAt": now + int(ttl_seconds) * 1000 if ttl_seconds else 0,
        }
        return json.dumps(entry, default=str)

    async def fetch(self, key: str) -> CacheResult:
        """Read a key, distinguishing a miss from an outage."""
        raw = await self._call(["GET", key])
        if raw is _UNAVAILABLE:
            return UNAVAILABLE
        return self._unwrap(key, raw)

    async def get(self, key: str) -> Any | None:
        """Return the value for ``key``, or None on miss/expiry/outage."""
        result = await self.fetch(key)
        return result.value if result.is_hit else None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Store ``value`` in an envelope; SETEX when a TTL is given.

        Returns:
            True if the store acknowledged the write.
        """
        serialized = self._envelope(value, ttl_seconds)
        if ttl_seconds:
            result = await self._call(["SETEX", key, str(int(ttl_seconds)), serialized])
        else:
            result = await self._call(["SET", key, serialized])
        return result == "OK"

    async def remove(self, key: str) -> CacheResult:
        """DEL ``key``: OK if this call removed it, MISS if it was absent."""
        result = await self._call(["DEL", key])
        if result is _UNAVAILABLE:
            return UNAVAILABLE
        return CacheResult(CacheStatus.OK, True) if result == 1 else MISS

    async def delete(self, key: str) -> bool:
        return (await self.remove(key)).is_hit

    async def exists(self, key: str) -> bool:
        result = await self._call(["EXISTS", key])
        return result == 1

    async def fetch_many(self, keys: Sequence[str]) -> dict[str, CacheResult]:
        """Batch read; each key gets its own typed result."""
        if not keys:
            return {}

        raw = await self._call(["MGET", *keys])
        if raw is _UNAVAILABLE or not isinstance(raw, list):
            return {key: UNAVAILABLE for key in keys}

        return {key: self._unwrap(key, value) for key, value in zip(keys, raw)}

    async def mget(self, keys: Sequence[str]) -> dict[str, Any | None]:
        results = await self.fetch_many(keys)
        return {key: result.value if result.is_hit else None for key, result in results.items()}

    async def mset(self, values: Mapping[str, Any], ttl_seconds: int | None = None) -> bool:
        """Write several keys in one MSET.

        MSET takes no TTL, so when one is requested each key gets its own
        EXPIRE afterwards, issued concurrently. The envelopes carry the
        expiry too, so a lost EXPIRE is still caught on read.
        """
        if not values:
            return True

        command: list[str] = ["MSET"]
        for key, value in values.items():
            command.extend([key, self._envelope(value, ttl_seconds)])

        result = await self._call(command)
        if result != "OK":
            return False

        if ttl_seconds:
            applied = await asyncio.gather(*(self.expire(key, ttl_seconds) for key in values))
            if not all(applied):
                logger.warning(
                    "cache.mset_expire_partial",
                    extra={"keys": len(values), "expired": sum(applied)},
                )
        return True

    async def increment(self, key: str, by: int = 1) -> int | None:
        """Atomically add ``by`` to an integer key; None on failure."""
        result = await self._call(["INCRBY", key, str(by)])
        if result is _UNAVAILABLE:
            return None
        try:
            return int(result)
        except (TypeError, ValueError):
            return None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        result = await self._call(["EXPIRE", key, str(int(ttl_seconds))])
        return result == 1

    async def ttl(self, key: str) -> int | None:
        """Seconds left on ``key``; -1 if it never expires, None if absent."""
        result = await self._call(["TTL", key])
        if result is _UNAVAILABLE or result is None:
            return None
        try:
            seconds = int(result)
        except (TypeError, ValueError):
            return None
        return None if seconds == -2 else seconds

    async def health_check(self) -> bool:
        """Round-trip PING. Not gated by (or counted against) the budget."""
        result = await self._call(["PING"], skip_budget=True)
        return result == "PONG"

    def get_stats(self) -> dict[str, int | bool]:
        self._budget.roll_over(self._today())
        return {
            "requests_today": self._budget.count,
            "remaining_requests": self._budget.remaining,
            "limit_reached": self._budget.count >= self._budget.limit_per_day,
        }

    async def set_user_profile(self, user_id: str, data: Any) -> bool:
        return await self.set(CacheKeys.user_profile(user_id), data, self._ttls.ttl_user_profile)

    async def get_user_profile(self, user_id: str) -> Any | None:
        return await self.get(CacheKeys.user_profile(user_id))

    async def set_user_notes(self, user_id: str, page: int, data: Any) -> bool:
        return await self.set(CacheKeys.user_notes(user_id, page), data, self._ttls.ttl_notes)

    async def get_user_notes(self, user_id: str, page: int) -> Any | None:
        return await self.get(CacheKeys.user_notes(user_id, page))

    async def set_ai_result(self, job_id: str, data: Any) -> bool:
        return await self.set(CacheKeys.ai_result(job_id), data, self._ttls.ttl_ai_results)

    async def get_ai_result(self, job_id: str) -> Any | None:
        return await self.get(CacheKeys.ai_result(job_id))

    async def invalidate_user_cache(self, user_id: str) -> None:
        """Drop a user's profile, subscription and first five note pages."""
        keys = [CacheKeys.user_profile(user_id), CacheKeys.subscription(user_id)]
        keys.extend(CacheKeys.user_notes(user_id, page) for page in range(1, 6))
        await asyncio.gather(*(self.delete(key) for key in keys))

    async def drain(self) -> None:
        """Wait for pending fire-and-forget deletes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._transport.aclose()


_client: BudgetedCacheClient | None = None
_client_config: tuple[str, str | None, int, float] | None = None


def get_cache_client() -> BudgetedCacheClient:
    """Return the process-wide cache client.

    The instance is cached in-module so the request budget survives across
    requests. If configuration changes (primarily in tests), it is rebuilt.
    """

    global _client, _client_config

    cfg = settings.cache
    config = (cfg.backend, cfg.rest_url, cfg.daily_request_limit, cfg.timeout_seconds)

    if _client is None or _client_config != config:
        _client = BudgetedCacheClient(
            create_cache_transport(cfg),
            daily_request_limit=cfg.daily_request_limit,
            cache_settings=cfg,
        )
        _client_config = config

    return _client


def reset_cache_client() -> None:
    """Forget the cached client (tests and shutdown)."""
    global _client, _client_config
    _client = None
    _client_config = None


async def close_cache_client() -> None:
    """Drain and close the process-wide client, if one was built."""
    global _client, _client_config
    if _client is not None:
        await _client.aclose()
    _client = None
    _client_config = None

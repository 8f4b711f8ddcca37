"""In-memory command store (development and tests).

Notes:
- Per-process only: every worker gets its own store.
- Speaks the same command subset the cache client issues, with store-side
  TTL evaluated against an injectable clock.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from app.adapters.cache.base import AbstractCacheTransport
from app.core.errors import CacheTransportError


@dataclass
class _StoredValue:
    value: str
    expires_at: float | None


class InMemoryCacheTransport(AbstractCacheTransport):
    """Dictionary-backed stand-in for the remote store.

    Values are stored as strings, like the real store. Event-loop confined,
    so no locking is needed.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, _StoredValue] = {}
        self.commands: list[list[str]] = []

    def _live(self, key: str) -> _StoredValue | None:
        item = self._data.get(key)
        if item is None:
            return None
        if item.expires_at is not None and self._clock() >= item.expires_at:
            del self._data[key]
            return None
        return item

    async def execute(self, command: Sequence[str]) -> Any:
        if not command:
            raise CacheTransportError("Empty cache command")

        name, *args = command
        self.commands.append([name, *args])
        handler = getattr(self, f"_cmd_{name.lower()}", None)
        if handler is None:
            raise CacheTransportError(f"Unsupported cache command: {name}")
        try:
            return handler(*args)
        except (TypeError, ValueError) as exc:
            raise CacheTransportError(f"Invalid arguments for {name}: {exc}") from exc

    def _cmd_ping(self) -> str:
        return "PONG"

    def _cmd_get(self, key: str) -> str | None:
        item = self._live(key)
        return item.value if item else None

    def _cmd_set(self, key: str, value: str) -> str:
        self._data[key] = _StoredValue(value=value, expires_at=None)
        return "OK"

    def _cmd_setex(self, key: str, seconds: str, value: str) -> str:
        ttl = int(seconds)
        if ttl <= 0:
            raise ValueError("invalid expire time")
        self._data[key] = _StoredValue(value=value, expires_at=self._clock() + ttl)
        return "OK"

    def _cmd_del(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    def _cmd_exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._live(key) is not None)

    def _cmd_mget(self, *keys: str) -> list[str | None]:
        return [self._cmd_get(key) for key in keys]

    def _cmd_mset(self, *pairs: str) -> str:
        if not pairs or len(pairs) % 2:
            raise ValueError("wrong number of arguments for MSET")
        for key, value in zip(pairs[::2], pairs[1::2]):
            self._data[key] = _StoredValue(value=value, expires_at=None)
        return "OK"

    def _cmd_incrby(self, key: str, by: str) -> int:
        item = self._live(key)
        current = int(item.value) if item else 0
        new_value = current + int(by)
        expires_at = item.expires_at if item else None
        self._data[key] = _StoredValue(value=str(new_value), expires_at=expires_at)
        return new_value

    def _cmd_expire(self, key: str, seconds: str) -> int:
        item = self._live(key)
        if item is None:
            return 0
        item.expires_at = self._clock() + int(seconds)
        return 1

    def _cmd_ttl(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            return -2
        if item.expires_at is None:
            return -1
        return max(0, math.ceil(item.expires_at - self._clock()))

"""Cache transport interface.

The cache client depends on this abstraction (not the concrete store) so the
Upstash REST endpoint can be swapped for an in-process store in development
and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence


class AbstractCacheTransport(ABC):
    """Interface for command-oriented key-value stores."""

    @abstractmethod
    async def execute(self, command: Sequence[str]) -> Any:
        """Send one command to the store and return its result.

        Args:
            command: Command name followed by its string arguments,
                e.g. ``["SETEX", "k", "60", "v"]``.

        Returns:
            The store's decoded result (``"OK"``, an int, a string, a list
            or None).

        Raises:
            CacheTransportError: On network, timeout or protocol failure.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any underlying connections."""
        return None

"""Upstash Redis REST transport.

Each command is one HTTPS POST whose body is the JSON command array and whose
response is ``{"result": ...}`` or ``{"error": "..."}``.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx

from app.adapters.cache.base import AbstractCacheTransport
from app.core.errors import CacheTransportError


class UpstashRestTransport(AbstractCacheTransport):
    """Async transport for the Upstash Redis REST API.

    Uses a pooled ``httpx.AsyncClient`` with a finite timeout so a slow store
    can never hang a request handler.
    """

    def __init__(
        self,
        rest_url: str,
        rest_token: str,
        *,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the REST transport.

        Args:
            rest_url: Upstash REST endpoint URL.
            rest_token: Bearer token for the endpoint.
            timeout_seconds: Per-command timeout in seconds.
            client: Optional preconfigured client (tests inject a MockTransport).
        """
        self._url = rest_url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {
            "Authorization": f"Bearer {rest_token}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout_seconds

    async def execute(self, command: Sequence[str]) -> Any:
        try:
            response = await self._client.post(
                self._url,
                json=list(command),
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise CacheTransportError(f"Cache command timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise CacheTransportError(f"Cache request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CacheTransportError(
                f"Cache request failed: {response.status_code} {response.reason_phrase}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise CacheTransportError("Cache returned a non-JSON response") from exc

        if not isinstance(payload, dict):
            raise CacheTransportError("Cache returned an unexpected payload shape")
        if "error" in payload:
            raise CacheTransportError(f"Cache command error: {payload['error']}")

        return payload.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()

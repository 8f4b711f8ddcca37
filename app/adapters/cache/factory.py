"""Factory pattern for creating cache transport instances."""

from app.adapters.cache.base import AbstractCacheTransport
from app.adapters.cache.in_memory import InMemoryCacheTransport
from app.adapters.cache.upstash import UpstashRestTransport
from app.core.config import CacheSettings, settings
from app.core.errors import ValidationAppError


def create_cache_transport(cache_settings: CacheSettings | None = None) -> AbstractCacheTransport:
    """Instantiate the cache transport selected by ``CACHE_BACKEND``.

    Args:
        cache_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractCacheTransport: Configured transport.

    Raises:
        ValidationAppError: If backend-specific requirements are not met.
    """
    cfg = cache_settings or settings.cache
    backend = cfg.backend.lower()

    if backend == "upstash":
        if not cfg.rest_url or not cfg.rest_token:
            raise ValidationAppError(
                code="cache_missing_credentials",
                message="Upstash backend requires CACHE_REST_URL and CACHE_REST_TOKEN",
            )
        return UpstashRestTransport(
            rest_url=cfg.rest_url,
            rest_token=cfg.rest_token,
            timeout_seconds=cfg.timeout_seconds,
        )

    if backend == "memory":
        return InMemoryCacheTransport()

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=f"Unknown cache backend: '{backend}'. Supported backends: upstash, memory",
    )

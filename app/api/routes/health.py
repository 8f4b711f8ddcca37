from __future__ import annotations

from fastapi import APIRouter, Depends

from app.services.cache_service import BudgetedCacheClient, get_cache_client

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(cache: BudgetedCacheClient = Depends(get_cache_client)) -> dict:
    """Health check endpoint.

    Reports liveness plus a cache round-trip probe and today's request
    budget. A failing cache only degrades the service (everything that uses
    it fails open), so the endpoint still answers 200.

    Returns:
        dict: ``status`` ("ok" or "degraded") and a ``cache`` section.
    """

    cache_healthy = await cache.health_check()
    return {
        "status": "ok" if cache_healthy else "degraded",
        "cache": {"healthy": cache_healthy, **cache.get_stats()},
    }

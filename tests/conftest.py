"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and points the cache at the
in-process backend so no test ever reaches a real store.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("APP_PRO_API_KEYS", "test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.adapters.cache.in_memory import InMemoryCacheTransport
from app.services.cache_service import BudgetedCacheClient

# 2026-10-17T12:00:00Z
START_TIME = 1_792_238_400.0


class FakeClock:
    """Deterministic clock used to drive TTL expiry and day rollovers."""

    def __init__(self, start: float = START_TIME) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> InMemoryCacheTransport:
    return InMemoryCacheTransport(clock=clock)


@pytest.fixture
def cache(transport: InMemoryCacheTransport, clock: FakeClock) -> BudgetedCacheClient:
    return BudgetedCacheClient(transport, daily_request_limit=1000, clock=clock)

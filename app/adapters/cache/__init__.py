"""Cache transport adapters.

Transports speak the store's command protocol (``["SET", key, value]``) and
nothing else; budgeting, envelopes and expiry live in the cache client.
"""

from app.adapters.cache.base import AbstractCacheTransport
from app.adapters.cache.factory import create_cache_transport
from app.adapters.cache.in_memory import InMemoryCacheTransport
from app.adapters.cache.upstash import UpstashRestTransport

__all__ = [
    "AbstractCacheTransport",
    "InMemoryCacheTransport",
    "UpstashRestTransport",
    "create_cache_transport",
]

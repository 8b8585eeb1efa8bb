"""HTTP response cache for Starlette and FastAPI applications."""

from respcache.cache import (
    CacheRule,
    CacheStore,
    InvalidationService,
    MemoryStore,
    RedisStore,
    ResponseCache,
    cache_rule,
)
from respcache.config import CacheSettings
from respcache.middleware import ResponseCacheMiddleware

__version__ = "0.1.0"

__all__ = [
    "CacheRule",
    "CacheSettings",
    "CacheStore",
    "InvalidationService",
    "MemoryStore",
    "RedisStore",
    "ResponseCache",
    "ResponseCacheMiddleware",
    "cache_rule",
]

"""Cache store factory."""

from __future__ import annotations

from respcache.cache.redis import RedisStore, create_redis
from respcache.cache.store import CacheStore, MemoryStore
from respcache.config import CacheSettings


def build_store(config: CacheSettings) -> CacheStore:
    """Construct the store named by config.store."""
    store_type = config.store.lower()
    if store_type == "redis":
        return RedisStore(create_redis(config.redis_url), namespace=config.key_prefix)
    if store_type == "memory":
        return MemoryStore()
    raise ValueError("Unsupported store. Supported values: memory, redis.")

"""Cache layer for HTTP responses.

Provides:
- Deterministic cache keys derived from the relevant request attributes
- Payload records that replay status, headers and body byte-for-byte
- Pluggable stores (in-memory, Redis) with tag support detection
- A route index for targeted eviction on stores without tags
- Single-flight locking of concurrent misses
- Tag, route, key and whole-store invalidation
"""

from respcache.cache.factory import build_store
from respcache.cache.index import RouteIndex
from respcache.cache.invalidation import InvalidationService
from respcache.cache.keys import KeyResolver, RequestAttributes, filter_query
from respcache.cache.lock import LockCoordinator
from respcache.cache.payload import CachedPayload, decode, encode
from respcache.cache.redis import RedisStore, create_redis
from respcache.cache.rules import CacheRule, cache_rule, parse_rule
from respcache.cache.service import ResponseCache
from respcache.cache.store import CacheStore, MemoryStore

__all__ = [
    # Keys and payloads
    "KeyResolver",
    "RequestAttributes",
    "filter_query",
    "CachedPayload",
    "encode",
    "decode",
    # Stores
    "CacheStore",
    "MemoryStore",
    "RedisStore",
    "create_redis",
    "build_store",
    # Coordination and indexing
    "LockCoordinator",
    "RouteIndex",
    # Rules
    "CacheRule",
    "cache_rule",
    "parse_rule",
    # Services
    "ResponseCache",
    "InvalidationService",
]

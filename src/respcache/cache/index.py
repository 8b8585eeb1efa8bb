"""Route index for targeted eviction on stores without tag support.

Each named route owns one index entry listing the cache keys produced under
it, oldest first. The index is a best-effort side table with no
transactional link to the entries it lists: a failed or lost index write
leaves the entry cached but untracked, and it simply expires by its own TTL.
"""

from __future__ import annotations

import logging

import orjson

from respcache.cache.store import CacheStore
from respcache.errors import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_INDEX_LIMIT = 1000


class RouteIndex:
    """Bounded route -> cache keys mapping kept in the cache store itself."""

    def __init__(
        self,
        store: CacheStore,
        prefix: str = "resp_cache:",
        limit: int = DEFAULT_INDEX_LIMIT,
    ):
        self.store = store
        self.prefix = prefix
        self.limit = limit

    def index_key(self, route: str) -> str:
        return f"{self.prefix}index:{route}"

    async def keys(self, route: str) -> list[str]:
        """Keys currently recorded for a route, oldest first."""
        raw = await self.store.get(self.index_key(route))
        if not raw:
            return []
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Discarding unreadable route index for {route}")
            return []
        return [str(key) for key in parsed] if isinstance(parsed, list) else []

    async def record(self, route: str, key: str, ttl: int) -> bool:
        """Add a key to the route's index. Never raises for store failures.

        Returns True if the index was written.
        """
        try:
            keys = await self.keys(route)
            if key not in keys:
                keys.append(key)
            if len(keys) > self.limit:
                keys = keys[-self.limit :]
            await self.store.put(self.index_key(route), orjson.dumps(keys), ttl)
        except StoreUnavailable as e:
            logger.warning(f"Route index update failed for {route}: {e}")
            return False
        return True

    async def evict_route(self, route: str) -> list[str]:
        """Delete every key recorded for a route, then the index entry.

        Returns the keys that were still present and got removed.
        """
        removed = []
        for key in await self.keys(route):
            if await self.store.delete(key):
                removed.append(key)
        await self.store.delete(self.index_key(route))
        logger.info(f"Evicted {len(removed)} cached responses for route {route}")
        return removed

"""Explicit invalidation of cached responses.

Driven by operators (CLI) or application code, never by the request path.
Unlike the request path these operations report failures: a tag flush on a
store without tag support raises CapabilityError, and store outages
propagate as StoreUnavailable.

Route eviction uses the store's tags when available (every entry cached for
a named route carries the reserved tag route:<name>) and falls back to the
route index otherwise.

Example:
    invalidation = InvalidationService(store, settings)
    await invalidation.invalidate_by_tags(["posts"])
    await invalidation.forget_route("list_posts")
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from respcache.cache.index import RouteIndex
from respcache.cache.keys import route_tag
from respcache.cache.store import CacheStore
from respcache.config import CacheSettings
from respcache.config import settings as default_settings
from respcache.errors import CapabilityError

logger = logging.getLogger(__name__)


class InvalidationService:
    """Tag, route, key and whole-store invalidation plus stats."""

    def __init__(self, store: CacheStore, config: CacheSettings | None = None):
        self.store = store
        self.config = config or default_settings
        self.index = RouteIndex(store, prefix=self.config.key_prefix, limit=self.config.index_limit)

    def supports_tags(self) -> bool:
        return self.store.supports_tags()

    async def invalidate_by_tags(self, tags: Sequence[str]) -> list[str]:
        """Flush every entry under any of the tags.

        Returns the cleaned tag list. Raises CapabilityError if the store
        cannot flush by tag.
        """
        cleaned = [tag.strip() for tag in tags if tag and tag.strip()]
        if not cleaned:
            return []
        if not self.store.supports_tags() or not await self.store.flush_tags(cleaned):
            raise CapabilityError("tags", self.store.driver)
        logger.info(f"Flushed cache tags: {', '.join(cleaned)}")
        return cleaned

    async def forget_by_key(self, key: str) -> bool:
        """Evict a single cached response."""
        removed = await self.store.delete(key)
        logger.info(f"Forgot cache key {key} (present={removed})")
        return removed

    async def forget_route(self, route: str) -> list[str]:
        """Evict every response cached for a named route.

        Returns the evicted keys when the route index was used; tag-based
        eviction cannot enumerate keys and returns an empty list.
        """
        if self.store.supports_tags():
            await self.store.flush_tags([route_tag(route)])
            logger.info(f"Flushed cached responses for route {route}")
            return []
        return await self.index.evict_route(route)

    async def clear_all(self) -> None:
        """Remove every entry from the store (destructive)."""
        await self.store.flush()
        logger.warning("Flushed entire response cache store")

    async def stats(self) -> dict[str, Any]:
        return await self.store.stats()

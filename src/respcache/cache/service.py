"""Programmatic response cache facade.

Ties key derivation, payload encoding, the store adapter, the route index
and the single-flight coordinator together. Every store touch on the
request path is fail-open: a StoreUnavailable on read is a miss, on write a
dropped entry, on locking an unlocked computation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import Response

from respcache.cache import payload as codec
from respcache.cache.index import RouteIndex
from respcache.cache.invalidation import InvalidationService
from respcache.cache.keys import KeyResolver, RequestAttributes, route_tag
from respcache.cache.lock import LockCoordinator
from respcache.cache.policy import prepare_for_store, response_rejection_reason
from respcache.cache.store import CacheStore
from respcache.config import CacheSettings
from respcache.config import settings as default_settings
from respcache.errors import StoreUnavailable

if TYPE_CHECKING:
    from respcache.cache.payload import CachedPayload

logger = logging.getLogger(__name__)

Compute = Callable[[Request], Awaitable[Response]]


def request_principal(request: Request) -> str | None:
    """Identifier of the authenticated principal, or None for guests.

    Reads the user installed by Starlette's AuthenticationMiddleware.
    """
    if "user" not in request.scope:
        return None
    user = request.scope["user"]
    if not getattr(user, "is_authenticated", False):
        return None
    for attribute in ("identity", "display_name"):
        try:
            value = getattr(user, attribute, None)
        except NotImplementedError:
            # BaseUser leaves identity abstract (SimpleUser does not override it)
            continue
        if value:
            return str(value)
    return "authenticated"


class ResponseCache:
    """Cache operations for HTTP responses.

    Args:
        store: Explicitly constructed store adapter
        config: Cache settings (defaults to the module-level settings)
    """

    def __init__(self, store: CacheStore, config: CacheSettings | None = None):
        self.backend = store
        self.config = config or default_settings
        self.resolver = KeyResolver.from_settings(self.config)
        self.index = RouteIndex(store, prefix=self.config.key_prefix, limit=self.config.index_limit)
        self.locks = LockCoordinator(store)
        self.invalidation = InvalidationService(store, self.config)

    def trace(self, message: str, *args: Any) -> None:
        """Per-request diagnostics, promoted to INFO when debug is enabled."""
        logger.log(logging.INFO if self.config.debug else logging.DEBUG, message, *args)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def resolve(
        self,
        request: Request,
        route_name: str | None = None,
        principal: str | None = None,
    ) -> tuple[str, dict[str, str]]:
        """Return (key, context) for a request."""
        if principal is None:
            principal = request_principal(request)
        attrs = RequestAttributes.from_request(request, route_name=route_name, principal=principal)
        return self.resolver.resolve(attrs)

    def make_key(
        self,
        request: Request,
        route_name: str | None = None,
        principal: str | None = None,
    ) -> str:
        return self.resolve(request, route_name, principal)[0]

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    async def lookup(self, key: str) -> CachedPayload | None:
        """Fetch and decode the stored payload. Failures count as a miss."""
        try:
            raw = await self.backend.get(key)
        except StoreUnavailable as e:
            logger.warning(f"Cache read failed, treating as miss: {e}")
            return None
        if raw is None:
            return None
        try:
            return codec.CachedPayload.from_bytes(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    async def get(self, key: str) -> Response | None:
        """Cached response for a key, marked with the hit indicator."""
        stored = await self.lookup(key)
        if stored is None:
            return None
        return codec.decode(stored, self.config.cache_header)

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    async def store(
        self,
        key: str,
        response: Response,
        ttl: int,
        route: str | None = None,
        tags: Sequence[str] = (),
    ) -> bool:
        """Store a fully-buffered response. Best effort; returns True if written."""
        record = codec.encode(response).to_bytes()
        tagged = self.backend.supports_tags()

        entry_tags: list[str] = []
        if tagged:
            entry_tags.extend(tags)
            if route:
                entry_tags.append(route_tag(route))
        elif tags:
            self.trace("Store lacks tag support, caching %s without tags %s", key, list(tags))

        try:
            await self.backend.put(key, record, ttl, tags=entry_tags)
        except StoreUnavailable as e:
            logger.warning(f"Cache write dropped for {key}: {e}")
            return False

        if route and not tagged:
            await self.index.record(route, key, ttl)

        self.trace("Stored %s for %ss (route=%s, tags=%s)", key, ttl, route, entry_tags)
        return True

    async def remember_response(
        self,
        request: Request,
        compute: Compute,
        ttl: int | None = None,
        route: str | None = None,
        tags: Sequence[str] = (),
    ) -> Response:
        """Serve request from cache, or compute, store and return it.

        compute must return a fully-buffered response (one with .body).
        Uses the single-flight coordinator when lock_seconds is set.
        """
        ttl = ttl or self.config.ttl
        key = self.make_key(request, route_name=route)

        cached = await self.get(key)
        if cached is not None:
            return cached

        async def produce() -> Response:
            response = await compute(request)
            await self.store_if_cacheable(key, response, ttl, route=route, tags=tags)
            return response

        if not self.config.locking_enabled:
            return await produce()

        return await self.locks.run(
            key,
            compute=produce,
            recheck=lambda: self.get(key),
            lease_ttl=self.config.lock_seconds,
            max_wait=self.config.lock_wait,
        )

    def prepare(self, key: str, response: Response, ttl: int) -> bool:
        """Decorate a cacheable response with ETag and Cache-Control.

        Returns False, leaving the response untouched, if policy rejects it.
        """
        reason = response_rejection_reason(response, self.config)
        if reason is not None:
            self.trace("Not caching %s: %s", key, reason)
            return False
        prepare_for_store(response, ttl, self.config)
        return True

    async def store_if_cacheable(
        self,
        key: str,
        response: Response,
        ttl: int,
        route: str | None = None,
        tags: Sequence[str] = (),
    ) -> bool:
        """Apply the cacheability policy, decorate and store the response."""
        if not self.prepare(key, response, ttl):
            return False
        return await self.store(key, response, ttl, route=route, tags=tags)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def supports_tags(self) -> bool:
        return self.invalidation.supports_tags()

    async def forget_by_key(self, key: str) -> bool:
        return await self.invalidation.forget_by_key(key)

    async def forget_route(self, route: str) -> list[str]:
        return await self.invalidation.forget_route(route)

    async def invalidate_by_tags(self, tags: Sequence[str]) -> list[str]:
        return await self.invalidation.invalidate_by_tags(tags)

    async def clear_all(self) -> None:
        await self.invalidation.clear_all()

    async def stats(self) -> dict[str, Any]:
        return await self.invalidation.stats()

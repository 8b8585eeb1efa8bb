"""Response cache middleware.

Serves GET/HEAD responses for rule-carrying routes from the cache store and
stores cacheable misses. Per request the middleware moves through:

    BYPASS       non-GET/HEAD, request no-store, no rule, or an authenticated
                 request under guest_only without auth=true on the route
    LOOKUP       derive the key and query the store
    HIT          decode the stored payload
    MISS_COMPUTE run the downstream handler (single-flight when configured)
    STORE        decorate (ETag, Cache-Control) and write cacheable responses
    CONDITIONAL  collapse HIT and freshly decorated responses into 304 when
                 the client's If-None-Match matches

Routes opt in with the cache_rule decorator or through the rules mapping
(route name -> rule string) given to the middleware.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import BaseRoute, Match
from starlette.types import ASGIApp, Scope

from respcache.cache.factory import build_store
from respcache.cache.policy import not_modified, request_bypass_reason
from respcache.cache.rules import CacheRule, parse_rule, rule_for
from respcache.cache.service import ResponseCache, request_principal
from respcache.cache.store import CacheStore
from respcache.config import CacheSettings
from respcache.config import settings as default_settings
from respcache.observability.logging import cache_key_var, cache_state_var

logger = logging.getLogger(__name__)

PrincipalResolver = Callable[[Request], str | None]


class CacheState(str, Enum):
    """Request states of the response cache."""

    BYPASS = "bypass"
    LOOKUP = "lookup"
    HIT = "hit"
    MISS_COMPUTE = "miss"
    STORE = "store"
    CONDITIONAL = "conditional"


def find_route(routes: Iterable[BaseRoute], scope: Scope) -> BaseRoute | None:
    """Return the endpoint route that fully matches scope, descending into mounts."""
    for route in routes:
        match, child_scope = route.matches(scope)
        if match != Match.FULL:
            continue
        if hasattr(route, "endpoint"):
            return route
        children = getattr(route, "routes", None)
        if children:
            found = find_route(children, {**scope, **child_scope})
            if found is not None:
                return found
    return None


async def buffer_response(response: Response) -> Response:
    """Drain a streamed response from call_next into a plain Response."""
    if hasattr(response, "body"):
        return response

    chunks = []
    async for chunk in response.body_iterator:  # type: ignore[attr-defined]
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))

    buffered = Response(content=b"".join(chunks), status_code=response.status_code)
    buffered.raw_headers = list(response.raw_headers)
    return buffered


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Cache whole responses of opted-in GET/HEAD routes.

    Features:
    - Deterministic keys over method, route, path, filtered query, vary
      headers and cookies, optional client IP and principal
    - Guest-only caching with per-route auth=true override
    - ETag assignment and 304 Not Modified on matching If-None-Match
    - Tag and route based invalidation
    - Optional single-flight locking of concurrent misses
    - Fail-open: store outages never fail the request

    Args:
        app: Wrapped ASGI application
        store: Store adapter (built from config.store when omitted)
        config: Cache settings (defaults to module-level settings)
        rules: Route name -> rule string or CacheRule
        principal_resolver: Returns the authenticated principal id or None

    The default principal resolver reads request.user, so Starlette's
    AuthenticationMiddleware must run before this middleware: add it with
    add_middleware after ResponseCacheMiddleware. Without it every request
    is treated as a guest and a warning is logged once.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: CacheStore | None = None,
        config: CacheSettings | None = None,
        rules: Mapping[str, str | CacheRule] | None = None,
        principal_resolver: PrincipalResolver | None = None,
    ) -> None:
        super().__init__(app)
        self.config = config or default_settings
        self.cache = ResponseCache(store or build_store(self.config), self.config)
        self.rules = {name: parse_rule(text) for name, text in (rules or {}).items()}
        self.principal_resolver = principal_resolver or request_principal
        self._warned_no_user = False

    def _resolve_rule(self, request: Request) -> tuple[str | None, CacheRule] | None:
        app: Any = request.scope.get("app")
        router = getattr(app, "router", None)
        if router is None:
            return None
        route = find_route(router.routes, request.scope)
        if route is None:
            return None

        name = getattr(route, "name", None)
        rule = self.rules.get(name) if name else None
        if rule is None:
            rule = rule_for(getattr(route, "endpoint", None))
        if rule is None:
            return None
        return name, rule

    def _check_user_scope(self, request: Request) -> None:
        if self._warned_no_user or not self.config.guest_only:
            return
        if self.principal_resolver is not request_principal or "user" in request.scope:
            return
        self._warned_no_user = True
        logger.warning(
            "guest_only is enabled but request.user is not set; add "
            "AuthenticationMiddleware after ResponseCacheMiddleware so it runs first. "
            "All requests are cached as guests."
        )

    def _bypass(self, reason: str) -> None:
        cache_state_var.set(CacheState.BYPASS.value)
        self.cache.trace("Cache bypass: %s", reason)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Serve from cache or compute, store and serve."""
        state_token = cache_state_var.set("")
        key_token = cache_key_var.set("")
        try:
            return await self._handle(request, call_next)
        finally:
            cache_state_var.reset(state_token)
            cache_key_var.reset(key_token)

    async def _handle(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        reason = request_bypass_reason(request)
        if reason is not None:
            self._bypass(reason)
            return await call_next(request)

        resolved = self._resolve_rule(request)
        if resolved is None:
            self._bypass("no cache rule")
            return await call_next(request)
        route_name, rule = resolved

        self._check_user_scope(request)
        principal = self.principal_resolver(request)
        if self.config.guest_only and principal is not None and not rule.allow_auth:
            self._bypass("authenticated request")
            return await call_next(request)

        # LOOKUP
        cache_state_var.set(CacheState.LOOKUP.value)
        ttl = rule.ttl_or(self.config.ttl)
        key, context = self.cache.resolve(request, route_name=route_name, principal=principal)
        cache_key_var.set(key)
        self.cache.trace("Cache lookup %s %s", key, context)

        cached = await self.cache.get(key)
        if cached is not None:
            cache_state_var.set(CacheState.HIT.value)
            self.cache.trace("Cache hit %s", key)
            return self._conditional(request, cached)

        cacheable = False
        computed = False

        async def compute() -> Response:
            nonlocal cacheable, computed
            computed = True
            cache_state_var.set(CacheState.MISS_COMPUTE.value)
            response = await buffer_response(await call_next(request))
            cacheable = self.cache.prepare(key, response, ttl)
            if cacheable and await self.cache.store(
                key, response, ttl, route=route_name, tags=rule.tags
            ):
                cache_state_var.set(CacheState.STORE.value)
            return response

        if self.config.locking_enabled:
            response = await self.cache.locks.run(
                key,
                compute=compute,
                recheck=lambda: self.cache.get(key),
                lease_ttl=self.config.lock_seconds,
                max_wait=self.config.lock_wait,
            )
            # Served from an entry another worker stored while we waited
            if not computed:
                cacheable = True
        else:
            response = await compute()

        # Decorated responses carry an ETag even when the write was dropped
        if cacheable:
            return self._conditional(request, response)
        return response

    def _conditional(self, request: Request, response: Response) -> Response:
        if not self.config.etag:
            return response
        replacement = not_modified(request, response)
        if replacement is None:
            return response
        cache_state_var.set(CacheState.CONDITIONAL.value)
        self.cache.trace("Conditional match, answering 304")
        return replacement

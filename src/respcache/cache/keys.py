"""Cache key derivation for cached responses.

Key format: {prefix}{sha256 hex of canonical request context}

The canonical context is an ordered mapping with fixed field names:
- method: upper-cased HTTP method
- route: route name when the request matched a named route, else ""
- path: request path
- query: filtered, name-sorted, url-encoded query string
- header:<name>: value of each configured vary header that is present
- cookie:<name>: value of each configured vary cookie that is present
- ip: client address (only when include_ip is enabled)
- principal: authenticated principal identifier, or "guest"

The mapping is serialized with orjson (insertion ordered, no whitespace) so
identical logical requests always hash to the same key.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import orjson

if TYPE_CHECKING:
    from starlette.requests import Request

    from respcache.config import CacheSettings

GUEST = "guest"


@dataclass(frozen=True)
class RequestAttributes:
    """The request attributes that participate in key derivation."""

    method: str
    path: str
    route_name: str | None = None
    query: Sequence[tuple[str, str]] = ()
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    client_ip: str | None = None
    principal: str | None = None

    @classmethod
    def from_request(
        cls,
        request: Request,
        route_name: str | None = None,
        principal: str | None = None,
    ) -> RequestAttributes:
        """Collect attributes from a Starlette request."""
        headers = {
            name.lower(): ", ".join(request.headers.getlist(name))
            for name in request.headers.keys()
        }
        return cls(
            method=request.method,
            path=request.url.path,
            route_name=route_name,
            query=list(request.query_params.multi_items()),
            headers=headers,
            cookies=dict(request.cookies),
            client_ip=client_ip(request),
            principal=principal,
        )


def client_ip(request: Request) -> str:
    """Extract client IP, handling proxies.

    Checks standard proxy headers in order of preference.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def filter_query(
    params: Iterable[tuple[str, str]],
    include: Sequence[str] = (),
    ignore: Sequence[str] = (),
) -> list[tuple[str, str]]:
    """Apply include/ignore filters and sort parameters by name.

    The include list is applied first. Ignore entries ending in ``*`` remove
    every parameter whose name starts with the remaining prefix. Sorting is
    stable, so repeated parameters keep their relative order.
    """
    selected = list(params)
    if include:
        allowed = set(include)
        selected = [(name, value) for name, value in selected if name in allowed]

    exact = {entry for entry in ignore if not entry.endswith("*")}
    prefixes = tuple(entry[:-1] for entry in ignore if entry.endswith("*"))
    selected = [
        (name, value)
        for name, value in selected
        if name not in exact and not (prefixes and name.startswith(prefixes))
    ]

    return sorted(selected, key=lambda item: item[0])


class KeyResolver:
    """Derives deterministic cache keys from request attributes.

    Resolution is a pure function of its inputs: it holds only configuration
    and may be called any number of times per request.
    """

    def __init__(
        self,
        prefix: str = "resp_cache:",
        vary_headers: Sequence[str] = (),
        vary_cookies: Sequence[str] = (),
        include_query_params: Sequence[str] = (),
        ignore_query_params: Sequence[str] = (),
        include_ip: bool = False,
    ):
        self.prefix = prefix
        self.vary_headers = tuple(vary_headers)
        self.vary_cookies = tuple(vary_cookies)
        self.include_query_params = tuple(include_query_params)
        self.ignore_query_params = tuple(ignore_query_params)
        self.include_ip = include_ip

    @classmethod
    def from_settings(cls, config: CacheSettings) -> KeyResolver:
        return cls(
            prefix=config.key_prefix,
            vary_headers=config.vary_headers,
            vary_cookies=config.vary_on_cookies,
            include_query_params=config.include_query_params,
            ignore_query_params=config.ignore_query_params,
            include_ip=config.include_ip,
        )

    def context(self, attrs: RequestAttributes) -> dict[str, str]:
        """Build the ordered key context for diagnostics and hashing."""
        query = filter_query(attrs.query, self.include_query_params, self.ignore_query_params)
        parts: dict[str, str] = {
            "method": attrs.method.upper(),
            "route": attrs.route_name or "",
            "path": attrs.path,
            "query": urlencode(query),
        }

        headers = {name.lower(): value for name, value in attrs.headers.items()}
        for header in self.vary_headers:
            value = headers.get(header.lower(), "")
            if value:
                parts[f"header:{header.lower()}"] = value

        for cookie in self.vary_cookies:
            value = attrs.cookies.get(cookie, "")
            if value:
                parts[f"cookie:{cookie}"] = value

        if self.include_ip:
            parts["ip"] = attrs.client_ip or ""

        parts["principal"] = attrs.principal or GUEST
        return parts

    def resolve(self, attrs: RequestAttributes) -> tuple[str, dict[str, str]]:
        """Return (cache key, context) for the given request attributes."""
        parts = self.context(attrs)
        digest = hashlib.sha256(orjson.dumps(parts)).hexdigest()
        return f"{self.prefix}{digest}", parts


def route_tag(route: str) -> str:
    """Reserved tag associating entries with the route that produced them."""
    return f"route:{route}"

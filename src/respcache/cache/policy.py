"""Cacheability, freshness headers and conditional responses.

These helpers hold the HTTP-facing rules of the response cache:
- which requests may be served from or written to the cache
- which responses are worth storing
- how stored responses are decorated (ETag, Cache-Control)
- when a response collapses into a 304 Not Modified
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from starlette.responses import Response

if TYPE_CHECKING:
    from starlette.requests import Request

    from respcache.config import CacheSettings

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})

# Directives with which a handler opts its response out of shared caching
OPT_OUT_DIRECTIVES = frozenset({"no-store", "no-cache", "private"})

# Headers a 304 may carry
NOT_MODIFIED_HEADERS = ("Cache-Control", "ETag", "Vary", "Date", "Last-Modified")


def cache_directives(value: str | None) -> set[str]:
    """Split a Cache-Control value into lower-cased directive names."""
    if not value:
        return set()
    return {part.split("=", 1)[0].strip().lower() for part in value.split(",") if part.strip()}


def request_bypass_reason(request: Request) -> str | None:
    """Why a request must bypass the cache entirely, or None."""
    if request.method.upper() not in CACHEABLE_METHODS:
        return "method"
    if "no-store" in cache_directives(request.headers.get("cache-control")):
        return "no-store"
    return None


def response_rejection_reason(response: Response, config: CacheSettings) -> str | None:
    """Why a computed response must not be stored, or None if cacheable.

    Starlette sets no Cache-Control by default, so any directive present on
    the response was set by the handler and is honoured.
    """
    if response.status_code not in config.status_whitelist:
        return f"status {response.status_code}"

    if config.restrict_content_types:
        media_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if not _content_type_allowed(media_type, config.content_types):
            return f"content-type {media_type or 'missing'}"

    directives = cache_directives(response.headers.get("cache-control"))
    opted_out = directives & OPT_OUT_DIRECTIVES
    if opted_out:
        return f"cache-control {', '.join(sorted(opted_out))}"

    if config.max_payload_kb is not None:
        size_kb = len(response.body) / 1024
        if size_kb > config.max_payload_kb:
            return f"payload {size_kb:.1f}KB > {config.max_payload_kb}KB"

    return None


def _content_type_allowed(media_type: str, allowed: list[str]) -> bool:
    if not media_type:
        return False
    if media_type in allowed:
        return True
    # Structured syntax suffixes: application/vnd.api+json, application/atom+xml
    return media_type.endswith(("+json", "+xml"))


def compute_etag(body: bytes) -> str:
    """Quoted content-hash validator."""
    return f'"{hashlib.sha1(body, usedforsecurity=False).hexdigest()}"'


def prepare_for_store(response: Response, ttl: int, config: CacheSettings) -> Response:
    """Attach validator and freshness headers before the response is stored.

    Handler-provided ETag and Cache-Control values win.
    """
    if config.etag and "etag" not in response.headers:
        response.headers["ETag"] = compute_etag(bytes(response.body))

    if "cache-control" not in response.headers:
        response.headers["Cache-Control"] = f"max-age={ttl}, public"

    return response


def etag_matches(if_none_match: str | None, etag: str | None) -> bool:
    """Weak comparison of an If-None-Match header against an ETag."""
    if not if_none_match or not etag:
        return False
    candidates = [tag.strip() for tag in if_none_match.split(",")]
    if "*" in candidates:
        return True
    return _strip_weak(etag) in {_strip_weak(tag) for tag in candidates}


def _strip_weak(tag: str) -> str:
    return tag[2:] if tag.startswith("W/") else tag


def not_modified(request: Request, response: Response) -> Response | None:
    """Return a 304 replacing response if the client already holds it."""
    if not etag_matches(request.headers.get("if-none-match"), response.headers.get("etag")):
        return None

    replacement = Response(status_code=304)
    for name in NOT_MODIFIED_HEADERS:
        for value in response.headers.getlist(name):
            replacement.headers.append(name, value)
    return replacement

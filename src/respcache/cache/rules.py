"""Per-route cache rules.

A rule is written as comma-separated parameters, e.g.:

    ttl=120,tag:posts,tag:feed,auth=true

- ttl=<seconds>   override the default TTL (minimum 1)
- tag:<name>      associate cached entries with a tag (repeatable)
- auth=<bool>     allow caching for authenticated requests on this route

Unknown parameters are ignored. Rules are attached to an endpoint with the
cache_rule decorator or handed to the middleware keyed by route name.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from respcache.errors import ConfigurationError

RULE_ATTRIBUTE = "__response_cache_rule__"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class CacheRule:
    """Cache overrides declared for one route. None means use the global value."""

    ttl: int | None = None
    tags: tuple[str, ...] = ()
    allow_auth: bool = False

    def ttl_or(self, default: int) -> int:
        return self.ttl if self.ttl is not None else default


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean in cache rule: {value!r}")


def parse_rule(text: str | CacheRule | None) -> CacheRule:
    """Parse a rule string such as "ttl=60,tag:test,auth=true"."""
    if isinstance(text, CacheRule):
        return text
    if not text:
        return CacheRule()

    ttl: int | None = None
    tags: list[str] = []
    allow_auth = False

    for raw in text.split(","):
        param = raw.strip()
        if not param:
            continue
        if param.startswith("ttl="):
            try:
                ttl = max(1, int(param[4:]))
            except ValueError as e:
                raise ConfigurationError(f"Invalid ttl in cache rule: {param!r}") from e
        elif param.startswith("tag:"):
            tag = param[4:].strip()
            if tag and tag not in tags:
                tags.append(tag)
        elif param.startswith("auth="):
            allow_auth = _parse_bool(param[5:])

    return CacheRule(ttl=ttl, tags=tuple(tags), allow_auth=allow_auth)


def cache_rule(text: str | CacheRule = "") -> Callable[[F], F]:
    """Mark an endpoint as cacheable with optional overrides.

    Example:
        @app.get("/posts")
        @cache_rule("ttl=120,tag:posts")
        async def list_posts(): ...
    """
    rule = parse_rule(text)

    def decorator(func: F) -> F:
        setattr(func, RULE_ATTRIBUTE, rule)
        return func

    return decorator


def rule_for(endpoint: Any) -> CacheRule | None:
    """Rule attached to an endpoint by cache_rule, if any."""
    return getattr(endpoint, RULE_ATTRIBUTE, None)

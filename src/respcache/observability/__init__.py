"""Observability for the response cache.

Provides structured logging with the cache key and state of the request
being served attached to every record.
"""

from respcache.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    cache_key_var,
    cache_state_var,
    configure_logging,
)

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "cache_key_var",
    "cache_state_var",
    "configure_logging",
]

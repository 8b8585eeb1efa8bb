"""Middleware for the response cache.

Provides:
- ResponseCacheMiddleware: serve and store whole responses for opted-in routes
"""

from respcache.middleware.caching import CacheState, ResponseCacheMiddleware

__all__ = [
    "CacheState",
    "ResponseCacheMiddleware",
]

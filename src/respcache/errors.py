"""Exception hierarchy for the response cache.

Only CapabilityError and ConfigurationError are meant to reach a user.
StoreUnavailable is raised by store adapters and absorbed by the request
path, which treats it as a cache miss or a dropped write.
"""

from __future__ import annotations


class ResponseCacheError(Exception):
    """Base exception for response cache errors."""


class StoreUnavailable(ResponseCacheError):
    """The backing store could not be reached or failed an operation."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Cache store unavailable during {operation}{detail}")


class CapabilityError(ResponseCacheError):
    """The configured store lacks a capability (tags) the caller asked for."""

    def __init__(self, capability: str, driver: str):
        self.capability = capability
        self.driver = driver
        super().__init__(f"The configured cache store ({driver}) does not support {capability}.")


class ConfigurationError(ResponseCacheError):
    """Invalid cache rule or command input."""

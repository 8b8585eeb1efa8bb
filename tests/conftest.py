"""Global pytest configuration and fixtures.

Provides a controllable clock for TTL tests, in-memory stores bound to it,
and a store whose every operation fails like an unreachable backend.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from respcache.cache.store import CacheStore, MemoryStore
from respcache.config import CacheSettings
from respcache.errors import StoreUnavailable


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(CacheStore):
    """Store whose backend is unreachable."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, operation: str) -> StoreUnavailable:
        self.calls.append(operation)
        return StoreUnavailable(operation, ConnectionError("connection refused"))

    def supports_tags(self) -> bool:
        return True

    async def get(self, key: str) -> bytes | None:
        raise self._fail("get")

    async def put(self, key: str, value: bytes, ttl: int, tags: Sequence[str] = ()) -> None:
        raise self._fail("put")

    async def delete(self, key: str) -> bool:
        raise self._fail("delete")

    async def flush_tags(self, tags: Sequence[str]) -> bool:
        raise self._fail("flush_tags")

    async def flush(self) -> None:
        raise self._fail("flush")

    async def acquire_lock(self, name: str, owner: str, ttl: int) -> bool:
        raise self._fail("acquire_lock")

    async def release_lock(self, name: str, owner: str) -> bool:
        raise self._fail("release_lock")


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryStore:
    """Tag-capable in-memory store driven by the fake clock."""
    return MemoryStore(clock=clock)


@pytest.fixture
def untagged_store(clock: FakeClock) -> MemoryStore:
    """In-memory store without tag support, forcing the route index path."""
    return MemoryStore(tags=False, clock=clock)


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def cache_settings() -> CacheSettings:
    """Default settings, isolated from any local .env file."""
    return CacheSettings(_env_file=None)

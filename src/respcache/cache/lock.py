"""Single-flight coordination for concurrent cache misses.

When several workers miss on the same key at once, only the lease holder
computes the response; the others wait for the lease, then find the entry
already stored. The lease lives in the cache store with its own TTL, so a
crashed holder cannot block the key for longer than lease_ttl.

Waiting is bounded: after max_wait the caller computes without the lease.
Duplicate computation under heavy contention is accepted over unavailability.

Example:
    coordinator = LockCoordinator(store)
    response = await coordinator.run(
        key, compute=render, recheck=lookup, lease_ttl=10, max_wait=5
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import uuid4

from respcache.cache.store import CacheStore
from respcache.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 0.1


class LockCoordinator:
    """Runs computations under a key-scoped lease held in the store."""

    def __init__(self, store: CacheStore, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.store = store
        self.poll_interval = poll_interval

    @staticmethod
    def lock_name(key: str) -> str:
        return f"{key}:lock"

    async def acquire(self, name: str, owner: str, lease_ttl: int, max_wait: float) -> bool:
        """Poll for the lease until acquired or max_wait elapses."""
        deadline = time.monotonic() + max_wait
        while True:
            if await self.store.acquire_lock(name, owner, lease_ttl):
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def run(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        recheck: Callable[[], Awaitable[T | None]],
        lease_ttl: int,
        max_wait: float,
    ) -> T:
        """Return recheck() if another holder populated the key, else compute().

        compute is expected to store its own result before returning.
        """
        name = self.lock_name(key)
        owner = uuid4().hex

        try:
            acquired = await self.acquire(name, owner, lease_ttl, max_wait)
        except StoreUnavailable as e:
            logger.warning(f"Lock store unavailable for {key}, computing unlocked: {e}")
            return await compute()

        if not acquired:
            logger.debug(f"Lock wait exceeded for {key}, computing unlocked")
            return await compute()

        try:
            cached = await recheck()
            if cached is not None:
                return cached
            return await compute()
        finally:
            try:
                await self.store.release_lock(name, owner)
            except StoreUnavailable as e:
                # Lease expires on its own after lease_ttl
                logger.warning(f"Failed to release lock for {key}: {e}")

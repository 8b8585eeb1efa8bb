"""Cache store adapters.

Defines the interface the response cache uses to talk to its backing
key/value store, plus an in-process implementation.

Contract shared by all adapters:
- get/put/delete operate on raw bytes; absence is None, never an exception
- tag operations report lack of support through supports_tags() and a False
  return from flush_tags(); they never raise for it
- backend I/O failures are raised as StoreUnavailable
- lease locks expire on their own after their TTL (store-enforced)
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any


class CacheStore(ABC):
    """Abstract base class for response cache stores."""

    @property
    def driver(self) -> str:
        """Name of the backing driver, for stats output."""
        return self.__class__.__name__

    @abstractmethod
    def supports_tags(self) -> bool:
        """Whether entries can be associated with tags and flushed by tag."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or None if absent or expired."""
        ...

    @abstractmethod
    async def put(self, key: str, value: bytes, ttl: int, tags: Sequence[str] = ()) -> None:
        """Store a value for ttl seconds.

        Tags are ignored by stores that do not support them.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        ...

    @abstractmethod
    async def flush_tags(self, tags: Sequence[str]) -> bool:
        """Remove every entry associated with any of the tags.

        Returns False without touching the store if tags are unsupported.
        """
        ...

    @abstractmethod
    async def flush(self) -> None:
        """Remove every entry held by this store."""
        ...

    @abstractmethod
    async def acquire_lock(self, name: str, owner: str, ttl: int) -> bool:
        """Try once to take an exclusive lease. Returns True if acquired."""
        ...

    @abstractmethod
    async def release_lock(self, name: str, owner: str) -> bool:
        """Release a lease if still held by owner."""
        ...

    async def stats(self) -> dict[str, Any]:
        return {"driver": self.driver, "supports_tags": self.supports_tags()}


@dataclass
class _Entry:
    value: bytes
    expires_at: float
    tags: tuple[str, ...] = ()


class MemoryStore(CacheStore):
    """In-process TTL store.

    Suitable for a single worker and for tests. Expiry is evaluated lazily
    against an injectable monotonic clock; writes also sweep expired entries
    and leases at most once per sweep_interval.

    Args:
        tags: Whether to advertise and honour tag support
        clock: Time source in seconds (default time.monotonic)
        sweep_interval: Minimum seconds between sweeps of expired state
    """

    def __init__(
        self,
        tags: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 1.0,
    ):
        self._tags_enabled = tags
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._entries: dict[str, _Entry] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._locks: dict[str, tuple[str, float]] = {}
        self._mutex = threading.Lock()

    def supports_tags(self) -> bool:
        return self._tags_enabled

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._remove(key)
            return None
        return entry

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            members = self._tag_index.get(tag)
            if members is not None:
                members.discard(key)
                if not members:
                    del self._tag_index[tag]
        return True

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            self._remove(key)
        for name in [n for n, (_, expiry) in self._locks.items() if expiry <= now]:
            del self._locks[name]

    async def get(self, key: str) -> bytes | None:
        with self._mutex:
            entry = self._live(key)
            return entry.value if entry else None

    async def put(self, key: str, value: bytes, ttl: int, tags: Sequence[str] = ()) -> None:
        tags = tuple(tags) if self._tags_enabled else ()
        with self._mutex:
            now = self._clock()
            self._sweep(now)
            self._remove(key)
            self._entries[key] = _Entry(value=value, expires_at=now + ttl, tags=tags)
            for tag in tags:
                self._tag_index.setdefault(tag, set()).add(key)

    async def delete(self, key: str) -> bool:
        with self._mutex:
            if self._live(key) is None:
                return False
            return self._remove(key)

    async def flush_tags(self, tags: Sequence[str]) -> bool:
        if not self._tags_enabled:
            return False
        with self._mutex:
            for tag in tags:
                for key in list(self._tag_index.get(tag, ())):
                    self._remove(key)
                self._tag_index.pop(tag, None)
        return True

    async def flush(self) -> None:
        with self._mutex:
            self._entries.clear()
            self._tag_index.clear()
            self._locks.clear()

    async def acquire_lock(self, name: str, owner: str, ttl: int) -> bool:
        with self._mutex:
            now = self._clock()
            self._sweep(now)
            held = self._locks.get(name)
            if held is not None and held[1] > now:
                return False
            self._locks[name] = (owner, now + ttl)
            return True

    async def release_lock(self, name: str, owner: str) -> bool:
        with self._mutex:
            held = self._locks.get(name)
            if held is None or held[0] != owner:
                return False
            del self._locks[name]
            return True

    async def stats(self) -> dict[str, Any]:
        data = await super().stats()
        with self._mutex:
            now = self._clock()
            data["entries"] = sum(1 for e in self._entries.values() if e.expires_at > now)
        return data

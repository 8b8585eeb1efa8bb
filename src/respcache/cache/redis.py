"""Redis store implementation for the response cache.

Uses the redis-py async client. Layout under the configured namespace:
- {namespace}{sha256}            cached payload bytes (SET ... EX)
- {namespace}index:{route}       route index (managed by RouteIndex)
- {namespace}tag:{tag}           Redis set of keys carrying the tag
- {key}:lock                     single-flight lease (SET NX EX)
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Any, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from respcache.cache.store import CacheStore
from respcache.errors import StoreUnavailable

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Only delete the lease if we still own it
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def create_redis(url: str) -> Redis:
    """Create a Redis client with connection pooling."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=False,  # We're storing bytes
    )


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisStore(CacheStore):
    """Response cache store backed by Redis.

    Tag sets outlive their members by the member TTL, so a tag never
    expires before an entry it points at.
    """

    def __init__(self, client: Redis, namespace: str = "resp_cache:"):
        self.client = client
        self.namespace = namespace

    def supports_tags(self) -> bool:
        return True

    def tag_key(self, tag: str) -> str:
        return f"{self.namespace}tag:{tag}"

    async def get(self, key: str) -> bytes | None:
        try:
            return cast(bytes | None, await self.client.get(key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable("get", e) from e

    async def put(self, key: str, value: bytes, ttl: int, tags: Sequence[str] = ()) -> None:
        try:
            async with self.client.pipeline() as pipe:
                pipe.set(key, value, ex=ttl)
                for tag in tags:
                    tag_key = self.tag_key(tag)
                    pipe.sadd(tag_key, key)
                    pipe.expire(tag_key, ttl, gt=True)
                    pipe.expire(tag_key, ttl, nx=True)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise StoreUnavailable("put", e) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable("delete", e) from e

    async def flush_tags(self, tags: Sequence[str]) -> bool:
        try:
            for tag in tags:
                tag_key = self.tag_key(tag)
                members = await cast(Awaitable[set[bytes]], self.client.smembers(tag_key))
                async with self.client.pipeline(transaction=True) as pipe:
                    for member in members:
                        pipe.delete(_text(member))
                    pipe.delete(tag_key)
                    await pipe.execute()
        except (RedisError, OSError) as e:
            raise StoreUnavailable("flush_tags", e) from e
        return True

    async def flush(self) -> None:
        # Use SCAN to avoid blocking on large keyspaces
        try:
            async for key in self.client.scan_iter(match=f"{self.namespace}*"):
                await self.client.delete(key)
        except (RedisError, OSError) as e:
            raise StoreUnavailable("flush", e) from e

    async def acquire_lock(self, name: str, owner: str, ttl: int) -> bool:
        try:
            acquired = await self.client.set(name, owner, nx=True, ex=ttl)
        except (RedisError, OSError) as e:
            raise StoreUnavailable("acquire_lock", e) from e
        return bool(acquired)

    async def release_lock(self, name: str, owner: str) -> bool:
        try:
            result = await cast(Awaitable[int], self.client.eval(RELEASE_SCRIPT, 1, name, owner))
        except (RedisError, OSError) as e:
            raise StoreUnavailable("release_lock", e) from e
        return bool(result)

    async def stats(self) -> dict[str, Any]:
        data = await super().stats()
        data["namespace"] = self.namespace
        return data

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self.client.aclose()

"""Read-through cache for LMS API reads.

Every feature service reads through this layer: check the cache, on a
miss call the LMS API, store the result with a TTL, return it.  The
TTL is the revalidation window: within it, repeated page loads are
served from cache; after it, the next read goes back to the API.

Invalidation uses both strategies:

  1. TTL: entries expire on their own after ``ttl_seconds``.
  2. Explicit: every mutation deletes the resource's keys so the next
     read sees fresh data.

Keys are ``"{resource}:{user_id}:{suffix}"``.  The user id keeps one
user's view of the API from leaking to another (the API filters by the
bearer token).  A mutation invalidates ``"{resource}:*"`` for everyone.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from portal.core.metrics import CACHE_OPERATIONS


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a prefix glob (e.g., 'classes:*')."""
        ...


class InMemoryCacheService:
    """Process-local cache with TTL enforcement."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: dict[str, tuple[str, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        self._store[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]


class RedisCacheService:
    """Redis-backed cache, shared across portal instances."""

    # Key prefix keeps cache entries apart from session records
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN instead of KEYS: cursor-based, never blocks Redis for long
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


async def read_through(
    cache: CacheService,
    key: str,
    ttl_seconds: int,
    loader: Callable[[], Awaitable[Any]],
) -> Any:
    """Return the cached JSON value for *key*, loading it on a miss."""
    cached = await cache.get(key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return json.loads(cached)

    CACHE_OPERATIONS.labels(operation="miss").inc()
    value = await loader()
    await cache.set(key, json.dumps(value), ttl_seconds)
    return value

"""Redis connection management.

When REDIS_URL is configured, the app root builds a real connection pool
and the session store and cache use it.  When it is None (local dev,
tests), both fall back to in-memory implementations and no Redis server
is needed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


def build_redis(redis_url: str | None) -> aioredis.Redis | None:  # type: ignore[type-arg]
    if not redis_url:
        return None
    return aioredis.from_url(
        redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
    )


@asynccontextmanager
async def lifespan_redis(
    redis_pool: aioredis.Redis | None,  # type: ignore[type-arg]
) -> AsyncIterator[None]:
    """Verify connectivity on startup and release the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; sessions and cache are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected")
    except Exception:
        # Start anyway: requests that touch Redis fail individually and
        # /health reports "degraded".
        logger.exception("Redis connection failed on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")

"""
Redis connection for the expiration sweeper's distributed lock.

The pool is created on first use, so processes that never sweep (tests,
``RUN_EXPIRATION_WORKER=false``) never open a connection.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis

from rideshare.config import settings

logger = logging.getLogger(__name__)

_pool: aioredis.ConnectionPool | None = None


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
        logger.info("Redis pool created for %s", settings.redis_url)
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    """Disconnect the shared pool, if one was opened."""
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None

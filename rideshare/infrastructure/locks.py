"""
Locking primitives.

* ``RideLocks`` -- in-process, per-ride ``asyncio.Lock`` registry.  The
  matching engine holds the locks for every ride an operation touches
  (always acquired in sorted id order, so two operations on overlapping
  ride sets cannot deadlock).  Across processes the same guarantee comes
  from ``SELECT ... FOR UPDATE`` on the ride rows plus the partial unique
  index on live matches.
* ``DistributedLock`` -- Redis based.  Used by the expiration sweeper so
  only one instance runs a sweep at a time.  SET NX EX for acquire and a
  Lua script for atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from collections.abc import Hashable
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RideLocks:
    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """Hold the locks for all *keys* for the duration of the block."""
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


# Delete the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> bool:
        """Release if we still own the lock.  False if it had already expired."""
        released = bool(await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token))
        if not released:
            logger.warning(
                "Lock %s expired before release (ttl=%ds)", self.key, self.ttl
            )
        return released

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise RuntimeError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args) -> None:
        await self.release()

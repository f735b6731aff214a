"""
Background Expiration Worker
============================

Runs every ``EXPIRATION_INTERVAL_SECONDS`` (default 1 h).

A ride expires when it is still ACTIVE after ``departure + flexibility``.

Concurrency safety
------------------
* **Redis distributed lock** (optional) ensures only one instance sweeps
  at a time across multiple API processes.
* Each ride is expired in **its own transaction** by a compare-and-set
  ``UPDATE ... WHERE status = 'ACTIVE'``, so a ride that was matched or
  cancelled after the scan simply stays as it is.
* A failure on one ride is logged and the sweep moves on.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import settings
from rideshare.domain.clock import Clock, as_utc, utc_now
from rideshare.domain.enums import RideStatus
from rideshare.infrastructure.database import async_session_factory
from rideshare.infrastructure.locks import DistributedLock
from rideshare.infrastructure.redis_client import get_redis
from rideshare.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)

LOCK_KEY = "ride_expiration"

RedisFactory = Callable[[], Awaitable[aioredis.Redis]]


class ExpirationSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        clock: Clock = utc_now,
        redis_factory: Optional[RedisFactory] = None,
        lock_ttl_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._redis_factory = redis_factory
        self._lock_ttl = lock_ttl_seconds

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """Execute one sweep.  Returns the number of rides expired."""
        if self._redis_factory is None:
            return await self._sweep(now)

        lock = DistributedLock(
            await self._redis_factory(), LOCK_KEY, ttl_seconds=self._lock_ttl
        )
        if not await lock.acquire():
            logger.debug("Lock held by another worker – skipping sweep")
            return 0
        try:
            return await self._sweep(now)
        finally:
            await lock.release()

    async def _sweep(self, now: Optional[datetime]) -> int:
        now = as_utc(now) if now is not None else self._clock()

        async with self._session_factory() as session:
            active = await RideRepository(session).find_by_status(RideStatus.ACTIVE)
        overdue = [r for r in active if now > r.expires_at]

        expired = failed = 0
        for ride in overdue:
            try:
                async with self._session_factory() as session, session.begin():
                    changed = await RideRepository(session).expire_if_active(ride.id, now)
            except Exception:
                failed += 1
                logger.exception("Failed to expire ride %s", ride.id)
                continue
            if changed:
                expired += 1
                logger.debug(
                    "Marked ride %s as EXPIRED (departure: %s, flexibility: %d min)",
                    ride.id, ride.departure_at.isoformat(), ride.flex_minutes,
                )

        if expired:
            logger.info(
                "Expiration sweep: %d of %d active rides expired (%d failed)",
                expired, len(active), failed,
            )
        else:
            logger.info("Expiration sweep: no rides to expire (%d failed)", failed)
        return expired


# ── Background loop ───────────────────────────────────────────────────

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def start_expiration_loop(sweeper: ExpirationSweeper | None = None) -> None:
    global _task, _stop_event
    if sweeper is None:
        sweeper = ExpirationSweeper(
            redis_factory=get_redis,
            lock_ttl_seconds=settings.expiration_lock_ttl_seconds,
        )
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(sweeper))
    logger.info(
        "Expiration worker started (interval=%ds)", settings.expiration_interval_seconds
    )


async def stop_expiration_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Expiration worker stopped")


async def _loop(sweeper: ExpirationSweeper) -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await sweeper.run_once()
        except Exception:
            logger.exception("Unhandled error in expiration sweep")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.expiration_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next sweep

"""Tests for the background expiration sweeper."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from rideshare.domain.enums import RideStatus
from rideshare.infrastructure.repositories import RideRepository
from rideshare.workers import expiration
from rideshare.workers.expiration import LOCK_KEY, ExpirationSweeper
from tests.conftest import NOW, TOMORROW_2PM


async def _status(session_factory, ride_id):
    async with session_factory() as session:
        return (await RideRepository(session).get(ride_id)).status


@pytest.fixture
def sweeper(session_factory, clock):
    return ExpirationSweeper(session_factory, clock=clock)


class TestSweep:
    @pytest.mark.asyncio
    async def test_expires_one_second_after_departure(self, sweeper, make_ride, users, session_factory):
        ride = await make_ride(users[0])

        assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(seconds=1)) == 1
        assert await _status(session_factory, ride.id) == RideStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_keeps_ride_before_departure(self, sweeper, make_ride, users, session_factory):
        ride = await make_ride(users[0])

        assert await sweeper.run_once(now=TOMORROW_2PM - timedelta(seconds=1)) == 0
        assert await _status(session_factory, ride.id) == RideStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_exactly_at_departure_is_not_overdue(self, sweeper, make_ride, users, session_factory):
        ride = await make_ride(users[0])

        assert await sweeper.run_once(now=TOMORROW_2PM) == 0
        assert await _status(session_factory, ride.id) == RideStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_flex_window_extends_expiry(self, sweeper, make_ride, users, session_factory):
        ride = await make_ride(users[0], flexible=True, flex_minutes=30)

        assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(minutes=20)) == 0
        assert await _status(session_factory, ride.id) == RideStatus.ACTIVE
        assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(minutes=31)) == 1
        assert await _status(session_factory, ride.id) == RideStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_only_active_rides_are_touched(self, sweeper, make_ride, users, session_factory):
        untouched = {
            status: await make_ride(users[0], status=status)
            for status in (
                RideStatus.MATCHED,
                RideStatus.COMPLETED,
                RideStatus.CANCELLED,
            )
        }
        overdue = await make_ride(users[1])

        assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(days=1)) == 1
        assert await _status(session_factory, overdue.id) == RideStatus.EXPIRED
        for status, ride in untouched.items():
            assert await _status(session_factory, ride.id) == status

    @pytest.mark.asyncio
    async def test_uses_clock_by_default(self, make_ride, users, session_factory):
        ride = await make_ride(users[0], departure_at=NOW - timedelta(minutes=5))
        sweeper = ExpirationSweeper(session_factory, clock=lambda: NOW)

        assert await sweeper.run_once() == 1
        assert await _status(session_factory, ride.id) == RideStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_ride_that_moved_on_is_left_alone(self, sweeper, make_ride, users, session_factory):
        ride = await make_ride(users[0])

        # the ride is matched between the scan and its own transaction
        with patch.object(RideRepository, "expire_if_active", AsyncMock(return_value=False)):
            assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(hours=1)) == 0
        assert await _status(session_factory, ride.id) == RideStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_failure_on_one_ride_does_not_stop_sweep(self, sweeper, make_ride, users, session_factory):
        broken = await make_ride(users[0])
        healthy = await make_ride(users[1])
        real_expire = RideRepository.expire_if_active

        async def flaky(self, ride_id, now):
            if ride_id == broken.id:
                raise RuntimeError("connection reset")
            return await real_expire(self, ride_id, now)

        with patch.object(RideRepository, "expire_if_active", flaky):
            assert await sweeper.run_once(now=TOMORROW_2PM + timedelta(hours=1)) == 1

        assert await _status(session_factory, broken.id) == RideStatus.ACTIVE
        assert await _status(session_factory, healthy.id) == RideStatus.EXPIRED


class TestSweepLock:
    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self, session_factory, clock, make_ride, users):
        ride = await make_ride(users[0], departure_at=NOW - timedelta(hours=1))
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)
        sweeper = ExpirationSweeper(
            session_factory, clock=clock, redis_factory=AsyncMock(return_value=mock_redis)
        )

        assert await sweeper.run_once() == 0
        assert await _status(session_factory, ride.id) == RideStatus.ACTIVE
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_sweeps_and_releases_when_lock_free(self, session_factory, clock, make_ride, users):
        ride = await make_ride(users[0], departure_at=NOW - timedelta(hours=1))
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)
        sweeper = ExpirationSweeper(
            session_factory,
            clock=clock,
            redis_factory=AsyncMock(return_value=mock_redis),
            lock_ttl_seconds=60,
        )

        assert await sweeper.run_once() == 1
        assert await _status(session_factory, ride.id) == RideStatus.EXPIRED
        mock_redis.set.assert_awaited_once()
        assert mock_redis.set.await_args.args[0] == f"lock:{LOCK_KEY}"
        assert mock_redis.set.await_args.kwargs["ex"] == 60
        mock_redis.eval.assert_awaited_once()


class TestExpirationLoop:
    @pytest.mark.asyncio
    async def test_loop_runs_a_sweep_and_stops(self):
        sweeper = AsyncMock(spec=ExpirationSweeper)
        sweeper.run_once = AsyncMock(return_value=0)

        await expiration.start_expiration_loop(sweeper)
        # give the loop one turn
        for _ in range(5):
            if sweeper.run_once.await_count:
                break
            await asyncio.sleep(0.01)
        await expiration.stop_expiration_loop()

        sweeper.run_once.assert_awaited()

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self):
        sweeper = AsyncMock(spec=ExpirationSweeper)
        sweeper.run_once = AsyncMock(side_effect=RuntimeError("db down"))

        await expiration.start_expiration_loop(sweeper)
        for _ in range(5):
            if sweeper.run_once.await_count:
                break
            await asyncio.sleep(0.01)
        await expiration.stop_expiration_loop()

        sweeper.run_once.assert_awaited()

"""Ride offer management: posting, browsing and cancelling offers."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain.clock import Clock, as_utc, to_wall_clock, utc_now
from rideshare.domain.compatibility import CompatibilityEvaluator
from rideshare.domain.entities import RideOffer
from rideshare.domain.enums import (
    LIVE_MATCH_STATUSES,
    CostSplitPreference,
    Destination,
    RideStatus,
)
from rideshare.domain.exceptions import (
    ConstraintViolationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from rideshare.infrastructure.repositories import (
    MatchRepository,
    RideRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


def _minutes_between(a: time, b: time) -> int:
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, a) - datetime.combine(anchor, b)
    return abs(delta) // timedelta(minutes=1)


class RideService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        evaluator: Optional[CompatibilityEvaluator] = None,
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self.evaluator = evaluator or CompatibilityEvaluator()
        self._clock = clock

    async def create_ride(
        self,
        owner_id: int,
        origin: str,
        destination: Union[Destination, str],
        departure_at: datetime,
        flexible: bool = False,
        flex_minutes: int = 0,
        max_passengers: int = 2,
        cost_split: Union[CostSplitPreference, str] = CostSplitPreference.EQUAL,
        notes: Optional[str] = None,
    ) -> RideOffer:
        try:
            destination = Destination.parse(destination)
        except ValueError:
            raise InvalidStateError(f"Invalid destination: {destination}") from None
        try:
            cost_split = CostSplitPreference(cost_split)
        except ValueError:
            raise InvalidStateError(f"Invalid cost split preference: {cost_split}") from None

        now = self._clock()
        ride = RideOffer(
            owner_id=owner_id,
            origin=origin.strip(),
            destination=destination,
            departure_at=as_utc(departure_at),
            flexible=flexible,
            flex_minutes=flex_minutes or 0,
            max_passengers=max_passengers,
            cost_split=cost_split,
            notes=notes,
            status=RideStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        ride.check_invariants()
        if ride.has_departed(now):
            raise InvalidStateError("Departure datetime must be in the future")

        async with self._session_factory() as session, session.begin():
            if await UserRepository(session).get_by_id(owner_id) is None:
                raise NotFoundError("User not found")
            ride = await RideRepository(session).add(ride)

        logger.info(
            "Ride %s posted by user %s to %s at %s",
            ride.id, owner_id, ride.destination.value, ride.departure_at.isoformat(),
        )
        return ride

    async def get_ride(self, ride_id: int) -> RideOffer:
        async with self._session_factory() as session:
            ride = await RideRepository(session).get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride not found with id: {ride_id}")
        return ride

    async def rides_for_user(self, user_id: int) -> list[RideOffer]:
        async with self._session_factory() as session:
            return await RideRepository(session).find_by_user(user_id)

    async def list_rides(
        self,
        destination: Optional[Destination] = None,
        on_date: Optional[date] = None,
        at_time: Optional[time] = None,
    ) -> list[RideOffer]:
        """Browse ACTIVE rides, filtered on the reference zone's wall clock."""
        async with self._session_factory() as session:
            rides = await RideRepository(session).find_by_status(RideStatus.ACTIVE)

        zone = self.evaluator.reference_timezone
        if destination is not None:
            rides = [r for r in rides if r.destination == destination]
        if on_date is not None:
            rides = [r for r in rides if to_wall_clock(r.departure_at, zone).date() == on_date]
        if at_time is not None:
            rides = [r for r in rides if self._departs_around(r, at_time, zone)]
        return rides

    async def cancel_ride(self, ride_id: int, user_id: int) -> RideOffer:
        async with self._session_factory() as session, session.begin():
            rides = RideRepository(session)
            ride = await rides.get(ride_id, for_update=True)
            if ride is None:
                raise NotFoundError(f"Ride not found with id: {ride_id}")
            if ride.owner_id != user_id:
                raise PermissionDeniedError("You can only cancel your own rides")
            if ride.status == RideStatus.CANCELLED:
                raise ConstraintViolationError("Ride is already cancelled")

            live = [
                m for m in await MatchRepository(session).find_by_ride(ride_id)
                if m.status in LIVE_MATCH_STATUSES
            ]
            if live:
                raise InvalidStateError("Cannot cancel ride with active matches")

            ride.transition_to(RideStatus.CANCELLED)
            ride.updated_at = self._clock()
            ride = await rides.save(ride)

        logger.info("Ride %s cancelled by user %s", ride_id, user_id)
        return ride

    @staticmethod
    def _departs_around(ride: RideOffer, at_time: time, zone: str) -> bool:
        local = to_wall_clock(ride.departure_at, zone).time()
        if local == at_time:
            return True
        if ride.flexible and ride.flex_minutes > 0:
            return _minutes_between(local, at_time) <= ride.flex_minutes
        return False

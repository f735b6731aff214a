"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rows are handed out as domain entities
(``RideOffer`` / ``Match``); writes go back through ``add`` / ``save``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import MatchModel, RideModel, UserModel
from rideshare.domain.clock import as_utc, utc_now
from rideshare.domain.entities import Match, RideOffer
from rideshare.domain.enums import (
    CostSplitPreference,
    Destination,
    MatchStatus,
    RideStatus,
)
from rideshare.domain.exceptions import NotFoundError


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


# ── Row <-> entity mapping ────────────────────────────────────────────


def ride_from_row(row: RideModel) -> RideOffer:
    return RideOffer(
        id=row.id,
        owner_id=row.user_id,
        origin=row.origin_location,
        destination=Destination(row.destination),
        departure_at=as_utc(row.departure_at),
        flexible=bool(row.flexible_time),
        flex_minutes=row.time_flexibility_minutes or 0,
        max_passengers=row.max_passengers,
        cost_split=CostSplitPreference(row.cost_split_preference),
        notes=row.notes,
        status=RideStatus(row.status),
        created_at=_utc_or_none(row.created_at),
        updated_at=_utc_or_none(row.updated_at),
    )


def match_from_row(row: MatchModel) -> Match:
    return Match(
        id=row.id,
        ride_a_id=row.ride_a_id,
        ride_b_id=row.ride_b_id,
        score=row.score if row.score is not None else 0.0,
        status=MatchStatus(row.status),
        created_at=_utc_or_none(row.created_at),
        confirmed_at=_utc_or_none(row.confirmed_at),
        completed_at=_utc_or_none(row.completed_at),
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, ride_id: int, for_update: bool = False) -> Optional[RideModel]:
        if for_update:
            return await self.session.get(RideModel, ride_id, with_for_update=True)
        return await self.session.get(RideModel, ride_id)

    async def get(self, ride_id: int, *, for_update: bool = False) -> Optional[RideOffer]:
        """Load a ride; ``for_update`` takes a row lock (SELECT ... FOR UPDATE)."""
        row = await self._get_row(ride_id, for_update)
        return ride_from_row(row) if row is not None else None

    async def add(self, ride: RideOffer) -> RideOffer:
        row = RideModel(
            user_id=ride.owner_id,
            origin_location=ride.origin,
            destination=ride.destination,
            departure_at=as_utc(ride.departure_at),
            flexible_time=ride.flexible,
            time_flexibility_minutes=ride.flex_minutes,
            max_passengers=ride.max_passengers,
            cost_split_preference=ride.cost_split,
            notes=ride.notes,
            status=ride.status,
            created_at=ride.created_at or utc_now(),
            updated_at=ride.updated_at or utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return ride_from_row(row)

    async def save(self, ride: RideOffer) -> RideOffer:
        """Write the mutable fields of *ride* back to its row."""
        row = await self._get_row(ride.id)
        if row is None:
            raise NotFoundError(f"Ride not found with id: {ride.id}")
        row.status = ride.status
        row.notes = ride.notes
        row.updated_at = ride.updated_at or utc_now()
        await self.session.flush()
        return ride_from_row(row)

    async def find_by_destination(
        self, destination: Destination, status: RideStatus | None = None
    ) -> list[RideOffer]:
        query = select(RideModel).where(RideModel.destination == destination)
        if status is not None:
            query = query.where(RideModel.status == status)
        query = query.order_by(RideModel.departure_at, RideModel.id)
        result = await self.session.execute(query)
        return [ride_from_row(r) for r in result.scalars().all()]

    async def find_by_user(self, user_id: int) -> list[RideOffer]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.user_id == user_id)
            .order_by(RideModel.created_at.desc(), RideModel.id.desc())
        )
        return [ride_from_row(r) for r in result.scalars().all()]

    async def find_by_status(self, status: RideStatus) -> list[RideOffer]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status == status)
            .order_by(RideModel.created_at.desc(), RideModel.id.desc())
        )
        return [ride_from_row(r) for r in result.scalars().all()]

    async def expire_if_active(self, ride_id: int, now: datetime) -> bool:
        """Compare-and-set ACTIVE -> EXPIRED.  Returns False if the ride moved on."""
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == RideStatus.ACTIVE)
            .values(status=RideStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(RideModel)
        )
        return result.scalar() or 0

    async def top_destinations(self, limit: int = 5) -> list[tuple[Destination, int]]:
        ride_count = func.count(RideModel.id)
        result = await self.session.execute(
            select(RideModel.destination, ride_count)
            .group_by(RideModel.destination)
            .order_by(ride_count.desc(), RideModel.destination)
            .limit(limit)
        )
        return [(Destination(d), int(n)) for d, n in result.all()]


class MatchRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, match_id: int, for_update: bool = False) -> Optional[MatchModel]:
        if for_update:
            return await self.session.get(MatchModel, match_id, with_for_update=True)
        return await self.session.get(MatchModel, match_id)

    async def get(self, match_id: int, *, for_update: bool = False) -> Optional[Match]:
        row = await self._get_row(match_id, for_update)
        return match_from_row(row) if row is not None else None

    async def add(self, match: Match) -> Match:
        row = MatchModel(
            ride_a_id=match.ride_a_id,
            ride_b_id=match.ride_b_id,
            pair_key=match.pair_key,
            score=match.score,
            status=match.status,
            created_at=match.created_at or utc_now(),
            confirmed_at=match.confirmed_at,
            completed_at=match.completed_at,
        )
        self.session.add(row)
        await self.session.flush()
        return match_from_row(row)

    async def save(self, match: Match) -> Match:
        row = await self._get_row(match.id)
        if row is None:
            raise NotFoundError(f"Match not found with id: {match.id}")
        row.status = match.status
        row.score = match.score
        row.confirmed_at = match.confirmed_at
        row.completed_at = match.completed_at
        await self.session.flush()
        return match_from_row(row)

    async def delete(self, match_id: int) -> None:
        row = await self._get_row(match_id)
        if row is None:
            raise NotFoundError(f"Match not found with id: {match_id}")
        await self.session.delete(row)
        await self.session.flush()

    async def find_by_ride(self, ride_id: int) -> list[Match]:
        result = await self.session.execute(
            select(MatchModel)
            .where(or_(MatchModel.ride_a_id == ride_id, MatchModel.ride_b_id == ride_id))
            .order_by(MatchModel.id)
        )
        return [match_from_row(m) for m in result.scalars().all()]

    async def find_by_ride_pair(self, ride_id_1: int, ride_id_2: int) -> list[Match]:
        """All matches between two rides, in either direction."""
        low, high = sorted((ride_id_1, ride_id_2))
        result = await self.session.execute(
            select(MatchModel)
            .where(MatchModel.pair_key == f"{low}:{high}")
            .order_by(MatchModel.id)
        )
        return [match_from_row(m) for m in result.scalars().all()]

    async def find_by_user(self, user_id: int) -> list[Match]:
        """Matches touching any ride owned by *user_id*, newest first."""
        owned = select(RideModel.id).where(RideModel.user_id == user_id)
        result = await self.session.execute(
            select(MatchModel)
            .where(or_(MatchModel.ride_a_id.in_(owned), MatchModel.ride_b_id.in_(owned)))
            .order_by(MatchModel.created_at.desc(), MatchModel.id.desc())
        )
        return [match_from_row(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(MatchModel)
        )
        return result.scalar() or 0

    async def count_by_status(self, status: MatchStatus) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(MatchModel)
            .where(MatchModel.status == status)
        )
        return result.scalar() or 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(UserModel)
        )
        return result.scalar() or 0

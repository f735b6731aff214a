"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample users
  - 10 sample ride offers to LAX / BUR / ONT / Union Station
    (mix of ACTIVE, MATCHED and COMPLETED)
  - 2 sample matches (one accepted, one completed) and 1 pending request
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from rideshare.domain.clock import utc_now
from rideshare.domain.enums import (
    CostSplitPreference,
    Destination,
    MatchStatus,
    RideStatus,
)
from rideshare.infrastructure.database import async_session_factory, engine
from rideshare.infrastructure.models import MatchModel, RideModel, UserModel


USERS = [
    {"name": "Maya Chen", "email": "maya@usc.edu"},
    {"name": "Jordan Lee", "email": "jordan@usc.edu"},
    {"name": "Sofia Ramirez", "email": "sofia@usc.edu"},
    {"name": "Ethan Park", "email": "ethan@usc.edu"},
    {"name": "Ava Johnson", "email": "ava@usc.edu"},
    {"name": "Noah Kim", "email": "noah@usc.edu"},
    {"name": "Priya Shah", "email": "priya@usc.edu"},
    {"name": "Lucas Brown", "email": "lucas@usc.edu"},
]

# (user index, origin, destination, hours from now, flex minutes,
#  passengers, cost split, status)
RIDES = [
    (0, "USC Village", Destination.LAX, 26, 30, 2, CostSplitPreference.EQUAL, RideStatus.ACTIVE),
    (1, "USC Village", Destination.LAX, 26.25, 0, 2, CostSplitPreference.EQUAL, RideStatus.ACTIVE),
    (2, "USC Parkside", Destination.LAX, 26.5, 45, 3, CostSplitPreference.BY_DISTANCE, RideStatus.ACTIVE),
    (3, "Figueroa & 30th", Destination.BUR, 50, 0, 1, CostSplitPreference.EQUAL, RideStatus.ACTIVE),
    (4, "USC Village", Destination.BUR, 50.5, 20, 2, CostSplitPreference.EQUAL, RideStatus.ACTIVE),
    (5, "USC Leavey Library", Destination.UNION_STATION, 8, 15, 2, CostSplitPreference.EQUAL, RideStatus.MATCHED),
    (6, "USC Leavey Library", Destination.UNION_STATION, 8.25, 15, 2, CostSplitPreference.EQUAL, RideStatus.MATCHED),
    (7, "Exposition Park", Destination.ONT, 72, 60, 3, CostSplitPreference.BY_DISTANCE, RideStatus.ACTIVE),
    (0, "USC Village", Destination.ONT, -48, 0, 2, CostSplitPreference.EQUAL, RideStatus.COMPLETED),
    (7, "USC Village", Destination.ONT, -48, 0, 2, CostSplitPreference.EQUAL, RideStatus.COMPLETED),
]


def _pair_key(a: int, b: int) -> str:
    low, high = sorted((a, b))
    return f"{low}:{high}"


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utc_now()

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(name=u["name"], email=u["email"], created_at=now)
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} users")

        # ── Rides ─────────────────────────────────────────────────────
        ride_models = []
        for user_idx, origin, dest, hours, flex, pax, split, status in RIDES:
            m = RideModel(
                user_id=user_models[user_idx].id,
                origin_location=origin,
                destination=dest,
                departure_at=now + timedelta(hours=hours),
                flexible_time=flex > 0,
                time_flexibility_minutes=flex,
                max_passengers=pax,
                cost_split_preference=split,
                status=status,
                created_at=now,
                updated_at=now,
            )
            session.add(m)
            ride_models.append(m)
        await session.flush()
        print(f"  Created {len(ride_models)} rides")

        # ── Matches ───────────────────────────────────────────────────
        matches = [
            # Union Station pair, confirmed
            (ride_models[5], ride_models[6], 1.0, MatchStatus.ACCEPTED),
            # ONT pair, trip done
            (ride_models[8], ride_models[9], 1.0, MatchStatus.COMPLETED),
            # LAX request waiting for an answer
            (ride_models[1], ride_models[0], 0.93, MatchStatus.SUGGESTED),
        ]
        for ride_a, ride_b, score, status in matches:
            session.add(
                MatchModel(
                    ride_a_id=ride_a.id,
                    ride_b_id=ride_b.id,
                    pair_key=_pair_key(ride_a.id, ride_b.id),
                    score=score,
                    status=status,
                    created_at=now,
                    confirmed_at=now if status != MatchStatus.SUGGESTED else None,
                    completed_at=now if status == MatchStatus.COMPLETED else None,
                )
            )
        await session.flush()
        print(f"  Created {len(matches)} matches")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

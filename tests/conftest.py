"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are used as-is; the
partial unique index on live matches is created through its SQLite form.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from rideshare.domain.compatibility import CompatibilityEvaluator
from rideshare.domain.entities import RideOffer
from rideshare.domain.enums import CostSplitPreference, Destination, RideStatus
from rideshare.infrastructure.database import Base
from rideshare.infrastructure.models import UserModel
from rideshare.infrastructure.repositories import RideRepository
from rideshare.services.matching import MatchingEngine
from rideshare.services.rides import RideService


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# 2026-03-02 10:00 in Los Angeles
NOW = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
TOMORROW_2PM = datetime(2026, 3, 3, 22, 0, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """Fresh schema per test; StaticPool keeps the single in-memory DB alive."""
    test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(session_factory) -> list[int]:
    """Four users: ids 1..4."""
    async with session_factory() as session, session.begin():
        models = [
            UserModel(name=name, email=f"{name.lower()}@usc.edu", created_at=NOW)
            for name in ("Maya", "Jordan", "Sofia", "Ethan")
        ]
        session.add_all(models)
        await session.flush()
        return [m.id for m in models]


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def evaluator() -> CompatibilityEvaluator:
    return CompatibilityEvaluator()


@pytest.fixture
def matching_engine(session_factory, evaluator, clock) -> MatchingEngine:
    return MatchingEngine(session_factory, evaluator=evaluator, clock=clock)


@pytest.fixture
def ride_service(session_factory, evaluator, clock) -> RideService:
    return RideService(session_factory, evaluator=evaluator, clock=clock)


@pytest.fixture
def make_ride(session_factory, users):
    """Insert a ride offer directly; defaults to an inflexible LAX ride tomorrow 14:00 LA."""

    async def _make(
        owner_id: int,
        *,
        destination: Destination = Destination.LAX,
        departure_at: datetime = TOMORROW_2PM,
        origin: str = "USC Village",
        flexible: bool = False,
        flex_minutes: int = 0,
        max_passengers: int = 2,
        cost_split: CostSplitPreference = CostSplitPreference.EQUAL,
        status: RideStatus = RideStatus.ACTIVE,
        created_at: datetime = NOW,
    ) -> RideOffer:
        ride = RideOffer(
            owner_id=owner_id,
            origin=origin,
            destination=destination,
            departure_at=departure_at,
            flexible=flexible,
            flex_minutes=flex_minutes,
            max_passengers=max_passengers,
            cost_split=cost_split,
            status=status,
            created_at=created_at,
            updated_at=created_at,
        )
        async with session_factory() as session, session.begin():
            return await RideRepository(session).add(ride)

    return _make

"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.config import settings
from rideshare.domain.compatibility import CompatibilityEvaluator
from rideshare.infrastructure.database import async_session_factory
from rideshare.services.matching import MatchingEngine
from rideshare.services.rides import RideService
from rideshare.workers.expiration import ExpirationSweeper

_evaluator = CompatibilityEvaluator(
    default_tolerance_minutes=settings.default_time_tolerance_minutes,
    campus_marker=settings.campus_marker,
    reference_timezone=settings.reference_timezone,
)
# One engine per process so its ride locks are shared by all requests
_matching_engine = MatchingEngine(async_session_factory, evaluator=_evaluator)
_ride_service = RideService(async_session_factory, evaluator=_evaluator)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_matching_engine() -> MatchingEngine:
    return _matching_engine


def get_ride_service() -> RideService:
    return _ride_service


def get_expiration_sweeper() -> ExpirationSweeper:
    return ExpirationSweeper(async_session_factory)


async def get_current_user_id(
    x_user_id: Optional[int] = Header(None),
) -> int:
    """Caller identity, already authenticated upstream."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id

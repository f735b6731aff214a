"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health        -- simple health check
GET  /api/v1/admin/stats         -- totals and popular destinations
POST /api/v1/admin/expire-rides  -- run one expiration sweep now
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rideshare.api.dependencies import get_db, get_expiration_sweeper
from rideshare.api.middleware import limiter
from rideshare.api.schemas import (
    DestinationCount,
    HealthResponse,
    StatsResponse,
    SweepResponse,
)
from rideshare.config import settings
from rideshare.domain.enums import MatchStatus
from rideshare.infrastructure.repositories import (
    MatchRepository,
    RideRepository,
    UserRepository,
)
from rideshare.workers.expiration import ExpirationSweeper

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Ride-share totals and the most popular destinations",
)
@limiter.limit(settings.rate_limit)
async def get_stats(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    ride_repo = RideRepository(db)
    match_repo = MatchRepository(db)

    top = await ride_repo.top_destinations(limit=5)
    return StatsResponse(
        total_users=await UserRepository(db).count(),
        total_rides=await ride_repo.count(),
        total_matches=await match_repo.count(),
        accepted_matches=await match_repo.count_by_status(MatchStatus.ACCEPTED),
        popular_destinations=[
            DestinationCount(destination=d, rides=n) for d, n in top
        ],
    )


@router.post(
    "/expire-rides",
    response_model=SweepResponse,
    summary="Expire overdue ride offers now",
)
@limiter.limit(settings.rate_limit)
async def expire_rides(
    request: Request,
    sweeper: ExpirationSweeper = Depends(get_expiration_sweeper),
):
    return SweepResponse(expired=await sweeper.run_once())


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()

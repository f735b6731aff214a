"""
Ride endpoints
==============

POST  /api/v1/rides                   -- post a ride offer
GET   /api/v1/rides                   -- browse active offers (destination / date / time)
GET   /api/v1/rides/mine              -- the caller's offers
GET   /api/v1/rides/{ride_id}         -- one offer
PATCH /api/v1/rides/{ride_id}/cancel  -- withdraw an offer
"""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import get_current_user_id, get_ride_service
from rideshare.api.middleware import limiter
from rideshare.api.schemas import RideCreateRequest, RideResponse
from rideshare.config import settings
from rideshare.domain.enums import Destination
from rideshare.services.rides import RideService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Post a ride offer",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.create_ride(
        owner_id=user_id,
        origin=body.origin,
        destination=body.destination,
        departure_at=body.departure_at,
        flexible=body.flexible,
        flex_minutes=body.flex_minutes,
        max_passengers=body.max_passengers,
        cost_split=body.cost_split,
        notes=body.notes,
    )
    return RideResponse.model_validate(ride)


@router.get(
    "",
    response_model=list[RideResponse],
    summary="Browse active ride offers",
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    destination: Optional[Destination] = None,
    date: Optional[dt.date] = None,
    time: Optional[dt.time] = None,
    service: RideService = Depends(get_ride_service),
):
    rides = await service.list_rides(destination=destination, on_date=date, at_time=time)
    return [RideResponse.model_validate(r) for r in rides]


@router.get(
    "/mine",
    response_model=list[RideResponse],
    summary="List the caller's ride offers",
)
@limiter.limit(settings.rate_limit)
async def my_rides(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    rides = await service.rides_for_user(user_id)
    return [RideResponse.model_validate(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride offer",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.model_validate(await service.get_ride(ride_id))


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride offer",
    description=(
        "Transitions an ACTIVE ride to CANCELLED. "
        "Rides with a suggested or accepted match cannot be cancelled."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.cancel_ride(ride_id, user_id)
    return RideResponse.model_validate(ride)

"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rideshare.domain.enums import (
    CostSplitPreference,
    Destination,
    MatchStatus,
    RideStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    origin: str = Field(..., min_length=1, max_length=255)
    destination: Destination
    departure_at: datetime
    flexible: bool = False
    flex_minutes: int = Field(0, ge=0)
    max_passengers: int = Field(2, ge=1, le=3)
    cost_split: CostSplitPreference = CostSplitPreference.EQUAL
    notes: Optional[str] = Field(None, max_length=300)


class PairRequest(BaseModel):
    my_ride_id: int
    target_ride_id: int


class RespondRequest(BaseModel):
    decision: MatchStatus = Field(
        ..., description="ACCEPTED or REJECTED."
    )


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    owner_id: int
    origin: str
    destination: Destination
    departure_at: datetime
    flexible: bool
    flex_minutes: int
    max_passengers: int
    cost_split: CostSplitPreference
    notes: Optional[str] = None
    status: RideStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MatchResponse(BaseModel):
    id: int
    ride_a_id: int
    ride_b_id: int
    score: float
    status: MatchStatus
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CandidateResponse(BaseModel):
    ride: RideResponse
    score: float

    model_config = {"from_attributes": True}


class RideWithCandidatesResponse(BaseModel):
    ride: RideResponse
    candidates: list[CandidateResponse] = []
    has_candidates: bool = False

    model_config = {"from_attributes": True}


class CurrentMatchResponse(BaseModel):
    has_match: bool
    match: Optional[MatchResponse] = None


class DestinationCount(BaseModel):
    destination: Destination
    rides: int


class StatsResponse(BaseModel):
    total_users: int
    total_rides: int
    total_matches: int
    accepted_matches: int
    popular_destinations: list[DestinationCount] = []


class SweepResponse(BaseModel):
    expired: int


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str

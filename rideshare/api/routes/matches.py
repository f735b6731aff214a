"""
Match endpoints
===============

GET    /api/v1/matches/potential/{ride_id}  -- ranked candidates for a ride
POST   /api/v1/matches/join                 -- pair instantly (ACCEPTED)
POST   /api/v1/matches/request              -- ask to pair (SUGGESTED)
POST   /api/v1/matches/{match_id}/respond   -- accept / reject a request
POST   /api/v1/matches/{match_id}/complete  -- trip done
DELETE /api/v1/matches/{match_id}           -- cancel / leave a match
GET    /api/v1/matches/current              -- latest confirmed match
GET    /api/v1/matches                      -- match history
GET    /api/v1/matches/my-rides             -- open rides with their candidates
"""

from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import get_current_user_id, get_matching_engine
from rideshare.api.middleware import limiter
from rideshare.api.schemas import (
    CandidateResponse,
    CurrentMatchResponse,
    MatchResponse,
    MessageResponse,
    PairRequest,
    RespondRequest,
    RideWithCandidatesResponse,
)
from rideshare.config import settings
from rideshare.services.matching import MatchingEngine

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get(
    "/potential/{ride_id}",
    response_model=list[CandidateResponse],
    summary="Rides that can be joined from this ride, best first",
)
@limiter.limit(settings.rate_limit)
async def potential_matches(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    candidates = await engine.find_candidates(ride_id)
    return [CandidateResponse.model_validate(c) for c in candidates]


@router.post(
    "/join",
    status_code=201,
    response_model=MatchResponse,
    summary="Join a ride (no approval needed)",
)
@limiter.limit(settings.rate_limit)
async def join_ride(
    request: Request,
    body: PairRequest,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    match = await engine.join(body.my_ride_id, body.target_ride_id, user_id)
    return MatchResponse.model_validate(match)


@router.post(
    "/request",
    status_code=201,
    response_model=MatchResponse,
    summary="Request to pair with a ride",
)
@limiter.limit(settings.rate_limit)
async def request_match(
    request: Request,
    body: PairRequest,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    match = await engine.request(body.my_ride_id, body.target_ride_id, user_id)
    return MatchResponse.model_validate(match)


@router.post(
    "/{match_id}/respond",
    response_model=MatchResponse,
    summary="Accept or reject a match request",
)
@limiter.limit(settings.rate_limit)
async def respond_to_match(
    request: Request,
    match_id: int,
    body: RespondRequest,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    match = await engine.respond(match_id, user_id, body.decision)
    return MatchResponse.model_validate(match)


@router.post(
    "/{match_id}/complete",
    response_model=MatchResponse,
    summary="Mark a confirmed match as completed",
)
@limiter.limit(settings.rate_limit)
async def complete_match(
    request: Request,
    match_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    match = await engine.complete(match_id, user_id)
    return MatchResponse.model_validate(match)


@router.delete(
    "/{match_id}",
    response_model=MessageResponse,
    summary="Cancel / leave a match",
    description="Deletes the match; rides it had paired go back to ACTIVE.",
)
@limiter.limit(settings.rate_limit)
async def cancel_match(
    request: Request,
    match_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    await engine.cancel(match_id, user_id)
    return MessageResponse(message="Match cancelled successfully")


@router.get(
    "/current",
    response_model=CurrentMatchResponse,
    summary="The caller's most recently confirmed match",
)
@limiter.limit(settings.rate_limit)
async def current_match(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    match = await engine.current_match(user_id)
    if match is None:
        return CurrentMatchResponse(has_match=False)
    return CurrentMatchResponse(has_match=True, match=MatchResponse.model_validate(match))


@router.get(
    "",
    response_model=list[MatchResponse],
    summary="The caller's match history",
)
@limiter.limit(settings.rate_limit)
async def my_matches(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    return [MatchResponse.model_validate(m) for m in await engine.user_matches(user_id)]


@router.get(
    "/my-rides",
    response_model=list[RideWithCandidatesResponse],
    summary="The caller's open rides with what they can join",
)
@limiter.limit(settings.rate_limit)
async def my_rides_with_candidates(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    entries = await engine.rides_with_candidates(user_id)
    return [RideWithCandidatesResponse.model_validate(e) for e in entries]

"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``RideOffer`` and ``Match``: each enforces its own
  lifecycle through ``transition_to`` against the tables in ``enums``.
- Entities are plain dataclasses; repositories map them to and from ORM rows
  so the matching core never touches the session directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .clock import as_utc
from .enums import (
    LIVE_MATCH_STATUSES,
    MATCH_TRANSITIONS,
    RIDE_TRANSITIONS,
    CostSplitPreference,
    Destination,
    MatchStatus,
    RideStatus,
)
from .exceptions import ConstraintViolationError, InvalidStateError

MAX_NOTES_LENGTH = 300
MIN_PASSENGERS = 1
MAX_PASSENGERS = 3


class InvalidStateTransition(ConstraintViolationError):
    """Raised when a status change violates the state machine."""


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class RideOffer:
    owner_id: int
    origin: str
    destination: Destination
    departure_at: datetime
    flexible: bool = False
    flex_minutes: int = 0
    max_passengers: int = 2
    cost_split: CostSplitPreference = CostSplitPreference.EQUAL
    notes: Optional[str] = None
    status: RideStatus = RideStatus.ACTIVE
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def expires_at(self) -> datetime:
        """Departure plus the flexibility window."""
        return as_utc(self.departure_at) + timedelta(minutes=self.flex_minutes or 0)

    def has_departed(self, now: datetime) -> bool:
        return as_utc(self.departure_at) <= as_utc(now)

    def check_invariants(self) -> None:
        """Raise ``InvalidStateError`` if the offer's fields are inconsistent."""
        if not self.origin or not self.origin.strip():
            raise InvalidStateError("Origin location is required")
        if self.flex_minutes < 0:
            raise InvalidStateError("Time flexibility must be non-negative")
        if self.flexible and self.flex_minutes <= 0:
            raise InvalidStateError(
                "Time flexibility minutes must be greater than 0 "
                "when flexible time is enabled"
            )
        if not MIN_PASSENGERS <= self.max_passengers <= MAX_PASSENGERS:
            raise InvalidStateError(
                f"Maximum passengers must be between {MIN_PASSENGERS} "
                f"and {MAX_PASSENGERS}"
            )
        if self.notes is not None and len(self.notes) > MAX_NOTES_LENGTH:
            raise InvalidStateError(
                f"Notes cannot exceed {MAX_NOTES_LENGTH} characters"
            )

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


@dataclass
class Match:
    ride_a_id: int
    ride_b_id: int
    score: float = 0.0
    status: MatchStatus = MatchStatus.SUGGESTED
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.ride_a_id == self.ride_b_id:
            raise InvalidStateError("A ride cannot be matched with itself")

    @property
    def ride_ids(self) -> tuple[int, int]:
        return (self.ride_a_id, self.ride_b_id)

    @property
    def pair_key(self) -> str:
        """Order-independent key of the ride pair."""
        low, high = sorted(self.ride_ids)
        return f"{low}:{high}"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_MATCH_STATUSES

    def involves(self, ride_id: int) -> bool:
        return ride_id in self.ride_ids

    def other_ride_id(self, ride_id: int) -> int:
        if ride_id == self.ride_a_id:
            return self.ride_b_id
        if ride_id == self.ride_b_id:
            return self.ride_a_id
        raise ValueError(f"Ride {ride_id} is not part of match {self.id}")

    def transition_to(self, new_status: MatchStatus, at: datetime) -> None:
        """Move to *new_status*, stamping ``confirmed_at`` / ``completed_at``."""
        allowed = MATCH_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition match from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        if new_status == MatchStatus.ACCEPTED:
            self.confirmed_at = at
        elif new_status == MatchStatus.COMPLETED:
            self.completed_at = at


# ── Read models ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Candidate:
    ride: RideOffer
    score: float


@dataclass
class RideWithCandidates:
    ride: RideOffer
    candidates: list[Candidate] = field(default_factory=list)

    @property
    def has_candidates(self) -> bool:
        return bool(self.candidates)

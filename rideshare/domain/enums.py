"""Domain enumerations, state-transition rules and storage mapping."""

import enum
from typing import Optional


class Destination(str, enum.Enum):
    LAX = "LAX"
    BUR = "BUR"
    ONT = "ONT"
    UNION_STATION = "UNION_STATION"

    @classmethod
    def parse(cls, value: str) -> "Destination":
        """Accept ``"union station"`` / ``"lax"`` style input."""
        return cls(value.strip().upper().replace(" ", "_"))


class CostSplitPreference(str, enum.Enum):
    EQUAL = "EQUAL"
    BY_DISTANCE = "BY_DISTANCE"


class RideStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    MATCHED = "MATCHED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class MatchStatus(str, enum.Enum):
    SUGGESTED = "SUGGESTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.ACTIVE: {RideStatus.MATCHED, RideStatus.EXPIRED, RideStatus.CANCELLED},
    RideStatus.MATCHED: {RideStatus.ACTIVE, RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
    RideStatus.EXPIRED: set(),
}

MATCH_TRANSITIONS: dict[MatchStatus, set[MatchStatus]] = {
    MatchStatus.SUGGESTED: {MatchStatus.ACCEPTED, MatchStatus.REJECTED},
    MatchStatus.ACCEPTED: {MatchStatus.COMPLETED},
    MatchStatus.REJECTED: set(),
    MatchStatus.COMPLETED: set(),
}

# Matches that still occupy their ride pair
LIVE_MATCH_STATUSES = frozenset({MatchStatus.SUGGESTED, MatchStatus.ACCEPTED})


# ── Storage mapping ───────────────────────────────────────────────────
# Match statuses are persisted lower-case.


def match_status_to_storage(status: Optional[MatchStatus]) -> Optional[str]:
    if status is None:
        return None
    return MatchStatus(status).value.lower()


def match_status_from_storage(value: Optional[str]) -> Optional[MatchStatus]:
    if value is None or not value.strip():
        return None
    return MatchStatus(value.strip().upper())

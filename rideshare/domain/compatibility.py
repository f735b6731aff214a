"""
Ride Compatibility & Scoring
============================

Time compatibility
------------------
``diff`` is the whole-minute difference between the two departures, taken
on the local wall clock of the reference zone (naive: no DST correction is
applied after the conversion).

* both flexible      ->  diff <= flex_a + flex_b
* only one flexible  ->  diff <= that ride's flex
* neither flexible   ->  diff <= DEFAULT_TOLERANCE (30 min)

Match score
-----------
  score = 1.0
        - min(0.5, diff x 0.005)               time closeness
        + 0.10  if cost-split preferences match
        + (3 - |pax_a - pax_b|) x 0.05         similar capacity
        + 0.15  if origins are equal, else
          0.10  if both origins mention the campus marker

clamped to [0, 1].  Deterministic and symmetric in its arguments.

Complexity: O(1) per pair.
"""

from __future__ import annotations

from datetime import timedelta

from .clock import to_wall_clock
from .entities import RideOffer

DEFAULT_TOLERANCE_MINUTES = 30

TIME_PENALTY_PER_MINUTE = 0.005
MAX_TIME_PENALTY = 0.5
COST_SPLIT_BONUS = 0.10
PASSENGER_STEP_BONUS = 0.05
SAME_ORIGIN_BONUS = 0.15
CAMPUS_ORIGIN_BONUS = 0.10


def _normalise_origin(origin: str | None) -> str:
    return (origin or "").strip().lower()


class CompatibilityEvaluator:
    """Pure pairwise evaluator; holds configuration only."""

    def __init__(
        self,
        default_tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
        campus_marker: str = "usc",
        reference_timezone: str = "America/Los_Angeles",
    ):
        self.default_tolerance_minutes = default_tolerance_minutes
        self.campus_marker = campus_marker.lower()
        self.reference_timezone = reference_timezone

    def minutes_apart(self, a: RideOffer, b: RideOffer) -> int:
        local_a = to_wall_clock(a.departure_at, self.reference_timezone)
        local_b = to_wall_clock(b.departure_at, self.reference_timezone)
        return abs(local_a - local_b) // timedelta(minutes=1)

    def compatible(self, a: RideOffer, b: RideOffer) -> bool:
        diff = self.minutes_apart(a, b)
        flex_a = a.flex_minutes or 0
        flex_b = b.flex_minutes or 0

        if a.flexible and b.flexible:
            return diff <= flex_a + flex_b
        if a.flexible:
            return diff <= flex_a
        if b.flexible:
            return diff <= flex_b
        return diff <= self.default_tolerance_minutes

    def score(self, a: RideOffer, b: RideOffer) -> float:
        diff = self.minutes_apart(a, b)
        score = 1.0
        score -= min(MAX_TIME_PENALTY, diff * TIME_PENALTY_PER_MINUTE)

        if a.cost_split == b.cost_split:
            score += COST_SPLIT_BONUS

        score += (3 - abs(a.max_passengers - b.max_passengers)) * PASSENGER_STEP_BONUS

        origin_a = _normalise_origin(a.origin)
        origin_b = _normalise_origin(b.origin)
        if origin_a == origin_b:
            score += SAME_ORIGIN_BONUS
        elif self.campus_marker in origin_a and self.campus_marker in origin_b:
            score += CAMPUS_ORIGIN_BONUS

        return min(1.0, max(0.0, score))

"""Unit tests for time compatibility and match scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from rideshare.domain.compatibility import CompatibilityEvaluator
from rideshare.domain.entities import RideOffer
from rideshare.domain.enums import CostSplitPreference, Destination

# 14:00 in Los Angeles (PST)
T_1400 = datetime(2026, 3, 3, 22, 0, tzinfo=timezone.utc)


def _ride(
    minutes: float = 0,
    *,
    destination: Destination = Destination.LAX,
    origin: str = "USC Village",
    flexible: bool = False,
    flex_minutes: int = 0,
    max_passengers: int = 2,
    cost_split: CostSplitPreference = CostSplitPreference.EQUAL,
) -> RideOffer:
    return RideOffer(
        owner_id=1,
        origin=origin,
        destination=destination,
        departure_at=T_1400 + timedelta(minutes=minutes),
        flexible=flexible,
        flex_minutes=flex_minutes,
        max_passengers=max_passengers,
        cost_split=cost_split,
    )


@pytest.fixture
def evaluator():
    return CompatibilityEvaluator()


class TestMinutesApart:
    def test_whole_minutes(self, evaluator):
        assert evaluator.minutes_apart(_ride(0), _ride(20)) == 20

    def test_partial_minute_is_truncated(self, evaluator):
        assert evaluator.minutes_apart(_ride(0), _ride(30.9)) == 30

    def test_order_does_not_matter(self, evaluator):
        assert evaluator.minutes_apart(_ride(45), _ride(0)) == 45


class TestCompatible:
    def test_inflexible_within_default_tolerance(self, evaluator):
        assert evaluator.compatible(_ride(0), _ride(20))

    def test_inflexible_at_tolerance_boundary(self, evaluator):
        assert evaluator.compatible(_ride(0), _ride(30))

    @pytest.mark.parametrize("diff", [31, 45, 120, 100000])
    def test_inflexible_beyond_tolerance(self, evaluator, diff):
        assert not evaluator.compatible(_ride(0), _ride(diff))

    def test_both_flexible_adds_windows(self, evaluator):
        a = _ride(0, flexible=True, flex_minutes=20)
        b = _ride(45, flexible=True, flex_minutes=25)
        assert evaluator.compatible(a, b)
        c = _ride(46, flexible=True, flex_minutes=25)
        assert not evaluator.compatible(a, c)

    def test_only_one_flexible_uses_its_window(self, evaluator):
        flexible = _ride(0, flexible=True, flex_minutes=60)
        assert evaluator.compatible(flexible, _ride(60))
        assert evaluator.compatible(_ride(60), flexible)
        assert not evaluator.compatible(flexible, _ride(61))

    def test_narrow_flex_window_is_stricter_than_default(self, evaluator):
        # one flexible ride with 10 minutes replaces the 30 minute default
        assert not evaluator.compatible(_ride(0, flexible=True, flex_minutes=10), _ride(20))

    def test_custom_default_tolerance(self):
        evaluator = CompatibilityEvaluator(default_tolerance_minutes=60)
        assert evaluator.compatible(_ride(0), _ride(55))


class TestScore:
    def test_close_identical_rides_clamp_to_one(self, evaluator):
        # 1.0 - 0.10 + 0.10 + 0.15 + 0.15 = 1.30 -> 1.0
        a = _ride(0)
        b = _ride(20)
        assert evaluator.compatible(a, b)
        assert evaluator.score(a, b) == 1.0

    def test_unclamped_components(self, evaluator):
        a = _ride(0, origin="Downtown", max_passengers=1)
        b = _ride(
            60,
            origin="Koreatown",
            max_passengers=3,
            cost_split=CostSplitPreference.BY_DISTANCE,
        )
        # 1.0 - 0.30 + 0 + (3 - 2) * 0.05 + 0
        assert evaluator.score(a, b) == pytest.approx(0.75)

    def test_campus_origin_bonus(self, evaluator):
        a = _ride(0, origin="USC Village", max_passengers=1)
        b = _ride(
            60,
            origin="usc parkside",
            max_passengers=3,
            cost_split=CostSplitPreference.BY_DISTANCE,
        )
        assert evaluator.score(a, b) == pytest.approx(0.85)

    def test_origin_comparison_is_normalised(self, evaluator):
        a = _ride(0, origin="  Downtown ", max_passengers=1)
        b = _ride(
            60,
            origin="downtown",
            max_passengers=3,
            cost_split=CostSplitPreference.BY_DISTANCE,
        )
        assert evaluator.score(a, b) == pytest.approx(0.90)

    def test_time_penalty_is_capped(self, evaluator):
        a = _ride(0, origin="Downtown", max_passengers=1)
        b = _ride(
            100000,
            origin="Koreatown",
            max_passengers=3,
            cost_split=CostSplitPreference.BY_DISTANCE,
        )
        assert evaluator.score(a, b) == pytest.approx(0.55)

    @pytest.mark.parametrize("diff", [0, 7, 30, 90, 600, 100000])
    def test_score_in_unit_interval(self, evaluator, diff):
        score = evaluator.score(_ride(0, max_passengers=1), _ride(diff, max_passengers=3))
        assert 0.0 <= score <= 1.0

    def test_symmetric(self, evaluator):
        a = _ride(0, origin="USC Village", max_passengers=1, flexible=True, flex_minutes=15)
        b = _ride(
            37,
            origin="USC Parkside",
            max_passengers=3,
            cost_split=CostSplitPreference.BY_DISTANCE,
        )
        assert evaluator.score(a, b) == evaluator.score(b, a)

    def test_deterministic(self, evaluator):
        a, b = _ride(0, origin="Downtown"), _ride(42, origin="Koreatown")
        assert evaluator.score(a, b) == evaluator.score(a, b)

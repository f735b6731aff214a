"""Unit tests for ride / match entity state transitions (State Pattern)."""

from datetime import datetime, timedelta, timezone

import pytest

from rideshare.domain.entities import InvalidStateTransition, Match, RideOffer
from rideshare.domain.enums import (
    Destination,
    MatchStatus,
    RideStatus,
    match_status_from_storage,
    match_status_to_storage,
)
from rideshare.domain.exceptions import (
    ConstraintViolationError,
    InvalidStateError,
)

T = datetime(2026, 3, 3, 22, 0, tzinfo=timezone.utc)


def _ride(**kwargs) -> RideOffer:
    fields = dict(owner_id=1, origin="USC Village", destination=Destination.LAX, departure_at=T)
    fields.update(kwargs)
    return RideOffer(**fields)


class TestRideStateMachine:
    def test_initial_status_is_active(self):
        assert _ride().status == RideStatus.ACTIVE

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "target", [RideStatus.MATCHED, RideStatus.EXPIRED, RideStatus.CANCELLED]
    )
    def test_active_exits(self, target):
        ride = _ride()
        ride.transition_to(target)
        assert ride.status == target

    def test_matched_back_to_active(self):
        ride = _ride(status=RideStatus.MATCHED)
        ride.transition_to(RideStatus.ACTIVE)
        assert ride.status == RideStatus.ACTIVE

    def test_matched_to_completed(self):
        ride = _ride(status=RideStatus.MATCHED)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    # ── Invalid transitions ───────────────────────────────────────

    def test_active_to_completed_fails(self):
        with pytest.raises(InvalidStateTransition):
            _ride().transition_to(RideStatus.COMPLETED)

    def test_matched_cannot_be_cancelled_directly(self):
        with pytest.raises(InvalidStateTransition):
            _ride(status=RideStatus.MATCHED).transition_to(RideStatus.CANCELLED)

    @pytest.mark.parametrize(
        "terminal", [RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.EXPIRED]
    )
    def test_terminal_states_have_no_exit(self, terminal):
        ride = _ride(status=terminal)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.ACTIVE)

    def test_transition_error_is_constraint_violation(self):
        ride = _ride(status=RideStatus.CANCELLED)
        with pytest.raises(ConstraintViolationError):
            ride.transition_to(RideStatus.MATCHED)


class TestRideOffer:
    def test_expires_at_adds_flex_window(self):
        ride = _ride(flexible=True, flex_minutes=45)
        assert ride.expires_at == T + timedelta(minutes=45)

    def test_has_departed(self):
        ride = _ride()
        assert ride.has_departed(T)
        assert not ride.has_departed(T - timedelta(seconds=1))

    def test_naive_datetimes_are_taken_as_utc(self):
        ride = _ride(departure_at=T.replace(tzinfo=None))
        assert ride.expires_at == T

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"origin": "   "},
            {"flex_minutes": -5},
            {"flexible": True, "flex_minutes": 0},
            {"max_passengers": 0},
            {"max_passengers": 4},
            {"notes": "x" * 301},
        ],
    )
    def test_invalid_fields_rejected(self, kwargs):
        with pytest.raises(InvalidStateError):
            _ride(**kwargs).check_invariants()

    def test_valid_offer_passes(self):
        _ride(flexible=True, flex_minutes=30, max_passengers=3, notes="x" * 300).check_invariants()


class TestMatchStateMachine:
    def test_accept_stamps_confirmed_at(self):
        match = Match(ride_a_id=1, ride_b_id=2)
        match.transition_to(MatchStatus.ACCEPTED, T)
        assert match.status == MatchStatus.ACCEPTED
        assert match.confirmed_at == T
        assert match.completed_at is None

    def test_reject_sets_no_timestamps(self):
        match = Match(ride_a_id=1, ride_b_id=2)
        match.transition_to(MatchStatus.REJECTED, T)
        assert match.confirmed_at is None
        assert match.completed_at is None

    def test_complete_stamps_completed_at(self):
        match = Match(ride_a_id=1, ride_b_id=2, status=MatchStatus.ACCEPTED, confirmed_at=T)
        later = T + timedelta(hours=2)
        match.transition_to(MatchStatus.COMPLETED, later)
        assert match.completed_at == later
        assert match.confirmed_at == T

    def test_suggested_cannot_complete(self):
        with pytest.raises(InvalidStateTransition):
            Match(ride_a_id=1, ride_b_id=2).transition_to(MatchStatus.COMPLETED, T)

    def test_rejected_is_terminal(self):
        match = Match(ride_a_id=1, ride_b_id=2, status=MatchStatus.REJECTED)
        with pytest.raises(InvalidStateTransition):
            match.transition_to(MatchStatus.ACCEPTED, T)

    def test_rides_must_differ(self):
        with pytest.raises(InvalidStateError):
            Match(ride_a_id=3, ride_b_id=3)

    def test_pair_key_is_order_independent(self):
        assert Match(ride_a_id=9, ride_b_id=12).pair_key == "9:12"
        assert Match(ride_a_id=12, ride_b_id=9).pair_key == "9:12"

    def test_other_ride_id(self):
        match = Match(ride_a_id=4, ride_b_id=7)
        assert match.other_ride_id(4) == 7
        assert match.other_ride_id(7) == 4
        with pytest.raises(ValueError):
            match.other_ride_id(5)

    def test_liveness(self):
        assert Match(ride_a_id=1, ride_b_id=2).is_live
        assert Match(ride_a_id=1, ride_b_id=2, status=MatchStatus.ACCEPTED).is_live
        assert not Match(ride_a_id=1, ride_b_id=2, status=MatchStatus.REJECTED).is_live
        assert not Match(ride_a_id=1, ride_b_id=2, status=MatchStatus.COMPLETED).is_live


class TestMatchStatusStorage:
    @pytest.mark.parametrize("status", list(MatchStatus))
    def test_stored_lower_case(self, status):
        assert match_status_to_storage(status) == status.value.lower()

    def test_reads_any_case(self):
        assert match_status_from_storage("accepted") == MatchStatus.ACCEPTED
        assert match_status_from_storage(" Suggested ") == MatchStatus.SUGGESTED

    def test_none_and_blank(self):
        assert match_status_to_storage(None) is None
        assert match_status_from_storage(None) is None
        assert match_status_from_storage("  ") is None

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            match_status_from_storage("pending")

    def test_destination_parse(self):
        assert Destination.parse("union station") == Destination.UNION_STATION
        assert Destination.parse(" lax ") == Destination.LAX

"""
Matching Engine
===============

Candidate discovery plus the match lifecycle::

    SUGGESTED --accept--> ACCEPTED --complete--> COMPLETED
    SUGGESTED --reject--> REJECTED
    SUGGESTED / ACCEPTED --cancel--> (row deleted, rides back to ACTIVE)

Ride side::

    ACTIVE --match--> MATCHED --complete--> COMPLETED
    MATCHED --cancel match--> ACTIVE

Concurrency safety
------------------
* Every mutating call runs in **one** ``AsyncSession`` transaction; the
  precondition checks and the writes (one match, up to two rides) commit
  together or not at all.
* ``RideLocks`` serialises in-process calls that touch the same ride, and
  rides are loaded with **SELECT ... FOR UPDATE** in id order so separate
  processes serialise on the row locks.
* A partial unique index on live matches backs this up; a losing insert is
  reported as ``InvalidStateError`` rather than a store fault.
* ``find_candidates`` is read-only and lock-free.  Its result may go stale,
  so ``join`` / ``request`` re-validate everything inside the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.domain.clock import Clock, utc_now
from rideshare.domain.compatibility import CompatibilityEvaluator
from rideshare.domain.entities import (
    Candidate,
    Match,
    RideOffer,
    RideWithCandidates,
)
from rideshare.domain.enums import MatchStatus, RideStatus
from rideshare.domain.exceptions import (
    ConstraintViolationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from rideshare.infrastructure.locks import RideLocks
from rideshare.infrastructure.repositories import MatchRepository, RideRepository

logger = logging.getLogger(__name__)

RESPONSE_DECISIONS = frozenset({MatchStatus.ACCEPTED, MatchStatus.REJECTED})


class MatchingEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        evaluator: Optional[CompatibilityEvaluator] = None,
        clock: Clock = utc_now,
        locks: Optional[RideLocks] = None,
    ):
        self._session_factory = session_factory
        self.evaluator = evaluator or CompatibilityEvaluator()
        self._clock = clock
        self._locks = locks or RideLocks()

    # ── Queries ───────────────────────────────────────────────────────

    async def find_candidates(self, ride_id: int) -> list[Candidate]:
        """Compatible rides for *ride_id*, best score first."""
        async with self._session_factory() as session:
            return await self._find_candidates(session, ride_id, self._clock())

    async def rides_with_candidates(self, user_id: int) -> list[RideWithCandidates]:
        """Each of the user's open, not-yet-departed rides with its candidates."""
        now = self._clock()
        async with self._session_factory() as session:
            own_rides = await RideRepository(session).find_by_user(user_id)
            result = []
            for ride in own_rides:
                if ride.status != RideStatus.ACTIVE or ride.has_departed(now):
                    continue
                candidates = await self._find_candidates(session, ride.id, now)
                result.append(RideWithCandidates(ride=ride, candidates=candidates))
            return result

    async def current_match(self, user_id: int) -> Optional[Match]:
        """Most recently confirmed ACCEPTED match on any of the user's rides."""
        async with self._session_factory() as session:
            matches = await MatchRepository(session).find_by_user(user_id)
        accepted = [
            m for m in matches
            if m.status == MatchStatus.ACCEPTED and m.confirmed_at is not None
        ]
        if not accepted:
            return None
        return max(accepted, key=lambda m: m.confirmed_at)

    async def user_matches(self, user_id: int) -> list[Match]:
        async with self._session_factory() as session:
            return await MatchRepository(session).find_by_user(user_id)

    # ── Pairing ───────────────────────────────────────────────────────

    async def join(self, my_ride_id: int, target_ride_id: int, requester_id: int) -> Match:
        """Pair two rides immediately: ACCEPTED match, both rides MATCHED."""
        async with self._locks.hold(my_ride_id, target_ride_id):
            async with self._session_factory() as session, session.begin():
                now = self._clock()
                rides = RideRepository(session)
                matches = MatchRepository(session)

                my_ride, target = await self._load_pair(rides, my_ride_id, target_ride_id)
                self._check_pairing(my_ride, target, requester_id)

                existing = self._occupying_match(
                    await matches.find_by_ride_pair(my_ride.id, target.id)
                )
                if existing is not None and existing.status != MatchStatus.SUGGESTED:
                    raise InvalidStateError("Already matched with this ride")

                score = self.evaluator.score(my_ride, target)
                for ride in (my_ride, target):
                    self._move_ride(ride, RideStatus.MATCHED, now)
                    await rides.save(ride)

                if existing is not None:
                    # Promote the pending request instead of adding a second live row
                    existing.score = score
                    existing.transition_to(MatchStatus.ACCEPTED, now)
                    match = await matches.save(existing)
                else:
                    match = await self._insert(
                        matches,
                        Match(
                            ride_a_id=my_ride.id,
                            ride_b_id=target.id,
                            score=score,
                            status=MatchStatus.ACCEPTED,
                            created_at=now,
                            confirmed_at=now,
                        ),
                    )

        logger.info(
            "Ride %s joined ride %s (match=%s, score=%.2f)",
            my_ride_id, target_ride_id, match.id, match.score,
        )
        return match

    async def request(self, my_ride_id: int, target_ride_id: int, requester_id: int) -> Match:
        """Ask to pair with a ride: SUGGESTED match, ride statuses untouched."""
        async with self._locks.hold(my_ride_id, target_ride_id):
            async with self._session_factory() as session, session.begin():
                now = self._clock()
                rides = RideRepository(session)
                matches = MatchRepository(session)

                my_ride, target = await self._load_pair(rides, my_ride_id, target_ride_id)
                self._check_pairing(my_ride, target, requester_id)

                existing = self._occupying_match(
                    await matches.find_by_ride_pair(my_ride.id, target.id)
                )
                if existing is not None:
                    if existing.status == MatchStatus.SUGGESTED:
                        logger.debug(
                            "Match request %s -> %s already pending (match=%s)",
                            my_ride_id, target_ride_id, existing.id,
                        )
                        return existing
                    raise InvalidStateError("Already matched with this ride")

                match = await self._insert(
                    matches,
                    Match(
                        ride_a_id=my_ride.id,
                        ride_b_id=target.id,
                        score=self.evaluator.score(my_ride, target),
                        status=MatchStatus.SUGGESTED,
                        created_at=now,
                    ),
                )

        logger.info(
            "Ride %s requested ride %s (match=%s)", my_ride_id, target_ride_id, match.id
        )
        return match

    # ── Match lifecycle ───────────────────────────────────────────────

    async def respond(
        self, match_id: int, user_id: int, decision: Union[MatchStatus, str]
    ) -> Match:
        """Accept or reject a SUGGESTED match."""
        try:
            decision = MatchStatus(decision)
        except ValueError:
            raise InvalidStateError(f"Unknown decision: {decision}") from None
        if decision not in RESPONSE_DECISIONS:
            raise InvalidStateError("Decision must be ACCEPTED or REJECTED")

        ride_ids = await self._match_ride_ids(match_id)
        async with self._locks.hold(*ride_ids):
            async with self._session_factory() as session, session.begin():
                now = self._clock()
                rides = RideRepository(session)
                matches = MatchRepository(session)
                match, pair = await self._load_match(rides, matches, match_id, user_id)

                if match.status != MatchStatus.SUGGESTED:
                    raise InvalidStateError(
                        f"Match is {match.status.value}, not awaiting a response"
                    )

                if decision == MatchStatus.ACCEPTED:
                    if any(r.status != RideStatus.ACTIVE for r in pair):
                        raise InvalidStateError(
                            "Both rides must still be available to accept this match"
                        )
                    for ride in pair:
                        self._move_ride(ride, RideStatus.MATCHED, now)
                        await rides.save(ride)

                match.transition_to(decision, now)
                match = await matches.save(match)

        logger.info("Match %s %s by user %s", match_id, decision.value, user_id)
        return match

    async def cancel(self, match_id: int, user_id: int) -> None:
        """Delete a live match; rides it had paired go back to ACTIVE."""
        ride_ids = await self._match_ride_ids(match_id)
        async with self._locks.hold(*ride_ids):
            async with self._session_factory() as session, session.begin():
                now = self._clock()
                rides = RideRepository(session)
                matches = MatchRepository(session)
                match, pair = await self._load_match(rides, matches, match_id, user_id)

                if not match.is_live:
                    raise ConstraintViolationError(
                        f"Cannot cancel a {match.status.value} match"
                    )

                # a SUGGESTED match never moved its rides
                if match.status == MatchStatus.ACCEPTED:
                    for ride in pair:
                        if ride.status == RideStatus.MATCHED:
                            self._move_ride(ride, RideStatus.ACTIVE, now)
                            await rides.save(ride)
                await matches.delete(match.id)

        logger.info("Match %s cancelled by user %s", match_id, user_id)

    async def complete(self, match_id: int, user_id: int) -> Match:
        """Close an ACCEPTED match; both rides become COMPLETED."""
        ride_ids = await self._match_ride_ids(match_id)
        async with self._locks.hold(*ride_ids):
            async with self._session_factory() as session, session.begin():
                now = self._clock()
                rides = RideRepository(session)
                matches = MatchRepository(session)
                match, pair = await self._load_match(rides, matches, match_id, user_id)

                if match.status != MatchStatus.ACCEPTED:
                    raise InvalidStateError("Only an accepted match can be completed")

                for ride in pair:
                    self._move_ride(ride, RideStatus.COMPLETED, now)
                    await rides.save(ride)
                match.transition_to(MatchStatus.COMPLETED, now)
                match = await matches.save(match)

        logger.info("Match %s completed by user %s", match_id, user_id)
        return match

    # ── Internals ─────────────────────────────────────────────────────

    async def _find_candidates(
        self, session: AsyncSession, ride_id: int, now: datetime
    ) -> list[Candidate]:
        rides = RideRepository(session)
        ride = await rides.get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride not found with id: {ride_id}")

        linked = {
            m.other_ride_id(ride.id)
            for m in await MatchRepository(session).find_by_ride(ride.id)
            if m.status != MatchStatus.REJECTED
        }
        pool = await rides.find_by_destination(ride.destination, RideStatus.ACTIVE)

        candidates: list[Candidate] = []
        for other in pool:
            if (
                other.id == ride.id
                or other.owner_id == ride.owner_id
                or other.has_departed(now)
                or other.id in linked
            ):
                continue
            if not self.evaluator.compatible(ride, other):
                continue
            candidates.append(Candidate(ride=other, score=self.evaluator.score(ride, other)))

        # stable: equal scores keep departure / id order from the query
        candidates.sort(key=lambda c: c.score, reverse=True)
        logger.info(
            "Ride %s: %d candidates from %d active rides to %s",
            ride.id, len(candidates), len(pool), ride.destination.value,
        )
        return candidates

    async def _load_pair(
        self, rides: RideRepository, my_ride_id: int, target_ride_id: int
    ) -> tuple[RideOffer, RideOffer]:
        # lock rows in id order
        loaded: dict[int, Optional[RideOffer]] = {}
        for ride_id in sorted({my_ride_id, target_ride_id}):
            loaded[ride_id] = await rides.get(ride_id, for_update=True)

        my_ride = loaded[my_ride_id]
        if my_ride is None:
            raise NotFoundError("Your ride not found")
        target = loaded[target_ride_id]
        if target is None:
            raise NotFoundError("Target ride not found")
        return my_ride, target

    def _check_pairing(self, my_ride: RideOffer, target: RideOffer, requester_id: int) -> None:
        """Preconditions shared by ``join`` and ``request``."""
        if my_ride.owner_id != requester_id:
            raise PermissionDeniedError("You can only pair from your own ride")
        if my_ride.id == target.id:
            raise InvalidStateError("A ride cannot be matched with itself")
        if target.owner_id == requester_id:
            raise InvalidStateError("You cannot pair with your own ride")
        if my_ride.destination != target.destination:
            raise InvalidStateError("Rides must have the same destination")
        if target.status != RideStatus.ACTIVE:
            raise InvalidStateError("Target ride is not available for matching")
        if my_ride.status in (RideStatus.MATCHED, RideStatus.COMPLETED):
            raise InvalidStateError("Your ride is already matched or completed")
        if my_ride.status != RideStatus.ACTIVE:
            raise InvalidStateError(f"Your ride is {my_ride.status.value.lower()}")
        if not self.evaluator.compatible(my_ride, target):
            logger.debug("Rides %s and %s rejected: times incompatible", my_ride.id, target.id)
            raise InvalidStateError("Ride times are not compatible")

    @staticmethod
    def _occupying_match(pair_matches: list[Match]) -> Optional[Match]:
        """The (at most one) non-rejected match of a ride pair."""
        for match in pair_matches:
            if match.status != MatchStatus.REJECTED:
                return match
        return None

    @staticmethod
    async def _insert(matches: MatchRepository, match: Match) -> Match:
        try:
            return await matches.add(match)
        except IntegrityError as exc:
            # another process won the race for this pair
            raise InvalidStateError("Already matched with this ride") from exc

    async def _match_ride_ids(self, match_id: int) -> tuple[int, int]:
        async with self._session_factory() as session:
            match = await MatchRepository(session).get(match_id)
        if match is None:
            raise NotFoundError(f"Match not found with id: {match_id}")
        return match.ride_ids

    async def _load_match(
        self,
        rides: RideRepository,
        matches: MatchRepository,
        match_id: int,
        user_id: int,
    ) -> tuple[Match, tuple[RideOffer, RideOffer]]:
        match = await matches.get(match_id, for_update=True)
        if match is None:
            raise NotFoundError(f"Match not found with id: {match_id}")

        loaded: dict[int, Optional[RideOffer]] = {}
        for ride_id in sorted(match.ride_ids):
            loaded[ride_id] = await rides.get(ride_id, for_update=True)
        pair = (loaded[match.ride_a_id], loaded[match.ride_b_id])
        if pair[0] is None or pair[1] is None:
            raise NotFoundError(f"Ride of match {match_id} no longer exists")

        if user_id not in (pair[0].owner_id, pair[1].owner_id):
            raise PermissionDeniedError("You are not part of this match")
        return match, pair

    @staticmethod
    def _move_ride(ride: RideOffer, status: RideStatus, now: datetime) -> None:
        ride.transition_to(status)
        ride.updated_at = now

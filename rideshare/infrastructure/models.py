"""
SQLAlchemy ORM models.

Tables
------
* ``users``    -- people who post ride offers
* ``rides``    -- one-way ride offers to a destination hub
* ``matches``  -- suggested / confirmed pairings of two rides

Indexes
-------
* **B-Tree** on ``(destination, status)``, ``user_id`` and ``status`` for the
  candidate search, the per-user views and the expiration sweep.
* **Partial unique** on ``matches.pair_key`` where the match is not
  rejected: at most one live match per unordered ride pair.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.types import TypeDecorator

from .database import Base
from rideshare.domain.enums import (
    CostSplitPreference,
    Destination,
    MatchStatus,
    RideStatus,
    match_status_from_storage,
    match_status_to_storage,
)


class MatchStatusType(TypeDecorator):
    """Stores ``MatchStatus`` as its lower-case name."""

    impl = String(20)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return match_status_to_storage(value)

    def process_result_value(self, value, dialect):
        return match_status_from_storage(value)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    origin_location = Column(String(255), nullable=False)
    destination = Column(Enum(Destination), nullable=False)
    departure_at = Column(DateTime(timezone=True), nullable=False)
    flexible_time = Column(Boolean, default=False, nullable=False)
    time_flexibility_minutes = Column(Integer, default=0, nullable=False)
    max_passengers = Column(Integer, default=2, nullable=False)
    cost_split_preference = Column(
        Enum(CostSplitPreference),
        default=CostSplitPreference.EQUAL,
        nullable=False,
    )
    notes = Column(String(300), nullable=True)
    status = Column(Enum(RideStatus), default=RideStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_destination_status", "destination", "status"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_user", "user_id"),
    )


class MatchModel(Base):
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_a_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    ride_b_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    # "<low ride id>:<high ride id>"
    pair_key = Column(String(64), nullable=False)
    score = Column(Float, nullable=True)
    status = Column(MatchStatusType(), default=MatchStatus.SUGGESTED, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_matches_ride_a", "ride_a_id"),
        Index("idx_matches_ride_b", "ride_b_id"),
        Index(
            "uq_matches_live_pair",
            "pair_key",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
    )

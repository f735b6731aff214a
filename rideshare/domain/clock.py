"""Time helpers.

Instants are handled as timezone-aware UTC datetimes everywhere in the
domain.  SQLite (used in tests) drops tzinfo on the way back, so values read
from the store go through :func:`as_utc`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalise *value* to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache(maxsize=None)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def to_wall_clock(value: datetime, zone_name: str) -> datetime:
    """Local wall-clock time of *value* in *zone_name*, as a naive datetime."""
    return as_utc(value).astimezone(_zone(zone_name)).replace(tzinfo=None)

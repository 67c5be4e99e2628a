"""Time source abstraction.

Decay and recency depend on "now"; services take a Clock so tests can
pin time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

SECONDS_PER_DAY = 86400


class Clock(Protocol):
    """Supplies the current time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later`` (negative if reversed)."""
    return (as_utc(later) - as_utc(earlier)).total_seconds() / SECONDS_PER_DAY

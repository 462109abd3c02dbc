"""Injectable time sources.

Services read the current time through a ``Clock`` so that expiry and
due-date logic can be tested against a fixed point in time.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware datetime."""
        ...


class SystemClock:
    """Clock backed by the system time."""

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FrozenClock:
    """Clock that only moves when told to.

    Usage:
        clock = FrozenClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock.advance(milliseconds=1001)
    """

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._now = moment

    def advance(self, **delta: float) -> None:
        """Move the clock forward by a ``timedelta(**delta)``."""
        self._now += timedelta(**delta)


def epoch_ms(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)

"""Injectable time source for date-relative rules."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Interface: supplies the "now" / "today" reference for business rules."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Frozen clock for tests and replays; ``advance`` moves it forward."""

    def __init__(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self._now = now

    @classmethod
    def on(cls, day: date, *, hour: int = 9) -> "FixedClock":
        return cls(datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._now

    def advance(self, *, seconds: int = 0, days: int = 0, to: Optional[datetime] = None) -> None:
        if to is not None:
            self._now = to if to.tzinfo else to.replace(tzinfo=timezone.utc)
        else:
            self._now = self._now + timedelta(days=days, seconds=seconds)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency — override in tests with a ``FixedClock``."""
    return system_clock

"""
TRUEEQUITY — Clock
Components take a clock instead of reading wall time so staleness windows are testable.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from trueequity.utils.helpers import utc_now


class Clock(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        pass

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Reads wall time."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now

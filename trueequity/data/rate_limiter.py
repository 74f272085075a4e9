"""
TRUEEQUITY — Upstream Call Budget
Minimum spacing between calls plus a daily quota for rate-limited providers.
"""
import asyncio
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.logger import get_logger

logger = get_logger("rate_limiter")


@dataclass
class QuotaStatus:
    """Snapshot of today's budget."""

    day: Optional[date]
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class RateLimiter:
    """
    Serialises calls to one upstream.

    ``acquire()`` sleeps for whatever is left of the minimum interval since the
    previous call, then spends one unit of the daily quota. Once the quota is
    gone it returns False immediately, and the exhaustion is logged once per day.
    """

    def __init__(
        self,
        name: str,
        min_interval_seconds: float,
        daily_limit: int,
        clock: Optional[Clock] = None,
    ):
        self.name = name
        self.min_interval = min_interval_seconds
        self.daily_limit = daily_limit
        self.clock = clock or SystemClock()
        self._last_call: Optional[float] = None
        self._day: Optional[date] = None
        self._used = 0
        self._exhaustion_logged = False

    def _roll_day(self) -> None:
        today = self.clock.today()
        if self._day != today:
            self._day = today
            self._used = 0
            self._exhaustion_logged = False

    @property
    def status(self) -> QuotaStatus:
        self._roll_day()
        return QuotaStatus(day=self._day, used=self._used, limit=self.daily_limit)

    def exhausted(self) -> bool:
        self._roll_day()
        return self.daily_limit > 0 and self._used >= self.daily_limit

    async def acquire(self) -> bool:
        """Wait for the next call slot. False means the daily quota is spent."""
        if self.exhausted():
            if not self._exhaustion_logged:
                logger.warning("daily_quota_exhausted", upstream=self.name, limit=self.daily_limit)
                self._exhaustion_logged = True
            return False

        if self._last_call is not None and self.min_interval > 0:
            elapsed = time.monotonic() - self._last_call
            if elapsed < self.min_interval:
                wait = self.min_interval - elapsed
                logger.debug("rate_limit_wait", upstream=self.name, seconds=round(wait, 2))
                await asyncio.sleep(wait)

        self._last_call = time.monotonic()
        self._used += 1
        return True

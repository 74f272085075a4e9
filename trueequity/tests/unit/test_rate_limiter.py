"""
TRUEEQUITY — Unit Tests for the Upstream Call Budget
"""
import pytest
from unittest.mock import AsyncMock, patch
from structlog.testing import capture_logs

from trueequity.data.rate_limiter import RateLimiter


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_spacing_between_calls(self, clock):
        limiter = RateLimiter("test", min_interval_seconds=12.0, daily_limit=500, clock=clock)
        with patch("trueequity.data.rate_limiter.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await limiter.acquire() is True
            sleep.assert_not_called()
            assert await limiter.acquire() is True
            sleep.assert_awaited_once()
            waited = sleep.await_args.args[0]
            assert 0 < waited <= 12.0

    @pytest.mark.asyncio
    async def test_no_spacing_when_interval_is_zero(self, clock):
        limiter = RateLimiter("test", min_interval_seconds=0, daily_limit=10, clock=clock)
        with patch("trueequity.data.rate_limiter.asyncio.sleep", new_callable=AsyncMock) as sleep:
            for _ in range(5):
                assert await limiter.acquire()
            sleep.assert_not_called()
        assert limiter.status.used == 5
        assert limiter.status.remaining == 5

    @pytest.mark.asyncio
    async def test_quota_exhaustion_logged_once(self, clock):
        limiter = RateLimiter("test", min_interval_seconds=0, daily_limit=2, clock=clock)
        with capture_logs() as logs:
            assert await limiter.acquire()
            assert await limiter.acquire()
            assert await limiter.acquire() is False
            assert await limiter.acquire() is False
        exhausted = [entry for entry in logs if entry["event"] == "daily_quota_exhausted"]
        assert len(exhausted) == 1
        assert exhausted[0]["upstream"] == "test"
        assert limiter.exhausted()

    @pytest.mark.asyncio
    async def test_quota_resets_next_day(self, clock):
        limiter = RateLimiter("test", min_interval_seconds=0, daily_limit=1, clock=clock)
        assert await limiter.acquire()
        assert await limiter.acquire() is False
        clock.advance(days=1)
        assert not limiter.exhausted()
        assert await limiter.acquire()
        assert limiter.status.day == clock.today()
        assert limiter.status.used == 1

    @pytest.mark.asyncio
    async def test_zero_limit_means_unlimited(self, clock):
        limiter = RateLimiter("test", min_interval_seconds=0, daily_limit=0, clock=clock)
        for _ in range(3):
            assert await limiter.acquire()
        assert not limiter.exhausted()

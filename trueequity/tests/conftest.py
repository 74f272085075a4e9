"""
TRUEEQUITY — Test Configuration & Fixtures
Shared fixtures: fixed clock, in-memory store, scripted provider, sample data.
"""
import pytest
import pytest_asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.models import (
    BarInterval, DataSource, FundamentalSnapshot, Instrument, PriceBar,
)
from trueequity.db.gateway import StorageGateway
from trueequity.db.schema import init_db
from trueequity.utils.clock import FixedClock

# Monday 11:00 in New York, inside regular trading hours
NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def make_bars(
    symbol: str,
    closes: Sequence[float],
    end: date,
    step: timedelta = timedelta(days=1),
) -> List[PriceBar]:
    """Valid bars ending on ``end``, oldest first, one per ``step``."""
    last = datetime.combine(end, time.min, tzinfo=timezone.utc)
    first = last - step * (len(closes) - 1)
    return [
        PriceBar(
            symbol=symbol,
            timestamp=first + step * i,
            open=close,
            high=close + 1.0,
            low=max(close - 1.0, 0.01),
            close=close,
            volume=1_000_000.0,
        )
        for i, close in enumerate(closes)
    ]


class StubProvider(BaseDataAdapter):
    """Scripted provider that records every call."""

    def __init__(self, source: DataSource = DataSource.YAHOO):
        super().__init__(source=source)
        self.profiles: Dict[str, Instrument] = {}
        self.fundamentals: Dict[str, FundamentalSnapshot] = {}
        self.series: Dict[Tuple[str, BarInterval], List[PriceBar]] = {}
        self.latest: Dict[str, float] = {}
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[tuple] = []
        self.healthy = True

    def _record(self, op: str, symbol: str, *extra) -> None:
        self.calls.append((op, symbol) + extra)
        failure = self.failures.get((op, symbol))
        if failure is not None:
            raise failure

    def ops(self, symbol: Optional[str] = None) -> List[str]:
        return [c[0] for c in self.calls if symbol is None or c[1] == symbol]

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def get_profile(self, symbol):
        self._record("profile", symbol)
        return self.profiles.get(symbol)

    async def get_price_series(self, symbol, start, end, interval=BarInterval.DAILY):
        self._record("series", symbol, interval, start, end)
        bars = self.series.get((symbol, interval), [])
        return [b for b in bars if start <= b.trade_date <= end]

    async def get_latest_price(self, symbol):
        self._record("latest_price", symbol)
        return self.latest.get(symbol)

    async def get_fundamentals(self, symbol):
        self._record("fundamentals", symbol)
        return self.fundamentals.get(symbol)

    async def health_check(self):
        return self.healthy


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest_asyncio.fixture
async def gateway(clock):
    session_factory = await init_db("sqlite+aiosqlite://")
    gw = StorageGateway(session_factory, default_exchange="NASDAQ", clock=clock)
    yield gw
    await gw.dispose()


@pytest.fixture
def quality_fundamentals():
    """Cheap, healthy, fast-growing company."""
    return FundamentalSnapshot(
        symbol="QUALITY",
        period_type="annual",
        period_end_date=date(2023, 12, 31),
        pe_ratio=12.0,
        peg_ratio=0.8,
        price_to_book=1.5,
        eps_growth_yoy=30.0,
        revenue_growth_yoy=25.0,
        debt_to_equity=0.3,
        current_ratio=2.5,
        roe=30.0,
        roic=25.0,
    )


@pytest.fixture
def poor_fundamentals():
    """Expensive, leveraged, illiquid, barely growing company."""
    return FundamentalSnapshot(
        symbol="POOR",
        period_type="annual",
        period_end_date=date(2023, 12, 31),
        pe_ratio=50.0,
        peg_ratio=4.0,
        price_to_book=5.0,
        eps_growth_yoy=1.0,
        revenue_growth_yoy=2.0,
        debt_to_equity=3.0,
        current_ratio=0.5,
    )


@pytest.fixture
def rising_closes():
    """20 closes from 100.0 rising 0.5 per step."""
    return [100.0 + 0.5 * i for i in range(20)]


@pytest.fixture
def bar_factory():
    return make_bars


@pytest.fixture
def provider_factory():
    return StubProvider

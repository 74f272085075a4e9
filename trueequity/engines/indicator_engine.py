"""
TRUEEQUITY — Technical Indicator Engine
RSI(14) per timeframe. Each timeframe reads a different bar granularity,
so the four readings for one symbol are expected to differ.
"""
from datetime import timedelta
from typing import Dict, List, NamedTuple, Optional, Union

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.models import BarInterval, IndicatorSnapshot, PriceBar, Timeframe
from trueequity.db.gateway import StorageGateway
from trueequity.indicators.momentum import RSIIndicator
from trueequity.config.settings import IndicatorSettings, get_settings
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.helpers import normalize_symbol
from trueequity.utils.logger import get_logger

logger = get_logger("indicator_engine")


class TimeframePlan(NamedTuple):
    lookback_days: int
    interval: BarInterval


TIMEFRAME_PLANS: Dict[Timeframe, TimeframePlan] = {
    Timeframe.H1: TimeframePlan(60, BarInterval.HOURLY),
    Timeframe.M30: TimeframePlan(30, BarInterval.DAILY),
    Timeframe.H2: TimeframePlan(120, BarInterval.WEEKLY),
    Timeframe.D1: TimeframePlan(500, BarInterval.MONTHLY),
}


def parse_timeframe(value: Union[str, Timeframe]) -> Optional[Timeframe]:
    try:
        return Timeframe(value)
    except ValueError:
        return None


class IndicatorEngine:
    """Computes, stores and serves RSI readings."""

    def __init__(
        self,
        provider: BaseDataAdapter,
        gateway: StorageGateway,
        clock: Optional[Clock] = None,
        settings: Optional[IndicatorSettings] = None,
    ):
        self.provider = provider
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings().indicators
        self.rsi = RSIIndicator(period=self.settings.rsi_period)

    def _rsi_of(self, bars: List[PriceBar]) -> Optional[float]:
        return self.rsi.latest(self.provider.bars_to_dataframe(bars))

    async def _daily_from_storage(self, symbol: str) -> Optional[IndicatorSnapshot]:
        """RSI over persisted daily bars, skipping the provider entirely."""
        today = self.clock.today()
        start = today - timedelta(days=self.settings.daily_lookback_days)
        bars = await self.gateway.bars_between(symbol, start, today)
        if len(bars) < self.settings.daily_min_rows:
            logger.debug("daily_rsi_storage_short", symbol=symbol, rows=len(bars))
            return None
        value = self._rsi_of(bars)
        if value is None:
            return None
        return IndicatorSnapshot(symbol=symbol, as_of=today, timeframe=Timeframe.D1, rsi=value)

    async def _from_provider(self, symbol: str, timeframe: Timeframe) -> Optional[IndicatorSnapshot]:
        plan = TIMEFRAME_PLANS[timeframe]
        today = self.clock.today()
        bars = await self.provider.get_price_series(
            symbol, today - timedelta(days=plan.lookback_days), today, plan.interval
        )
        value = self._rsi_of(bars)
        if value is None:
            logger.info(
                "rsi_insufficient_data",
                symbol=symbol,
                timeframe=timeframe.value,
                bars=len(bars),
                required=self.rsi.min_points,
            )
            return None
        return IndicatorSnapshot(symbol=symbol, as_of=today, timeframe=timeframe, rsi=value)

    async def compute(self, symbol: str, timeframe: Union[str, Timeframe]) -> Optional[IndicatorSnapshot]:
        """Fresh RSI for a timeframe; None for unknown timeframes or too little data."""
        tf = parse_timeframe(timeframe)
        if tf is None:
            logger.warning("unsupported_timeframe", symbol=symbol, timeframe=str(timeframe))
            return None
        symbol = normalize_symbol(symbol)
        if tf == Timeframe.D1:
            snapshot = await self._daily_from_storage(symbol)
            if snapshot is not None:
                return snapshot
        return await self._from_provider(symbol, tf)

    async def compute_and_store(self, symbol: str, timeframe: Union[str, Timeframe]) -> Optional[IndicatorSnapshot]:
        snapshot = await self.compute(symbol, timeframe)
        if snapshot is not None:
            await self.gateway.ensure_instrument(snapshot.symbol)
            await self.gateway.upsert_indicator(snapshot)
            logger.debug("rsi_stored", symbol=snapshot.symbol, timeframe=snapshot.timeframe.value, rsi=snapshot.rsi)
        return snapshot

    async def get_rsi(self, symbol: str, timeframe: Union[str, Timeframe]) -> Optional[IndicatorSnapshot]:
        """Today's stored reading when there is one, otherwise compute, store and return."""
        tf = parse_timeframe(timeframe)
        if tf is None:
            logger.warning("unsupported_timeframe", symbol=symbol, timeframe=str(timeframe))
            return None
        symbol = normalize_symbol(symbol)
        stored = await self.gateway.latest_indicator(symbol, tf, on_date=self.clock.today())
        if stored is not None:
            return stored
        return await self.compute_and_store(symbol, tf)

    async def refresh_all(self, symbol: str) -> Dict[Timeframe, Optional[float]]:
        """Recompute every timeframe; one failing timeframe does not stop the others."""
        results: Dict[Timeframe, Optional[float]] = {}
        for tf in TIMEFRAME_PLANS:
            try:
                snapshot = await self.compute_and_store(symbol, tf)
                results[tf] = snapshot.rsi if snapshot else None
            except Exception as e:
                logger.error("rsi_refresh_failed", symbol=symbol, timeframe=tf.value, error=str(e))
                results[tf] = None
        return results

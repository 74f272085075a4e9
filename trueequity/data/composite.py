"""
TRUEEQUITY — Composite Data Provider
Presents one provider contract over a rich, rate-limited fundamentals source
and a cheap price source, filling gaps field by field.
"""
from datetime import date
from typing import Awaitable, Callable, List, Optional, TypeVar

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.adapters.alpha_vantage_adapter import AlphaVantageAdapter
from trueequity.data.adapters.yahoo_adapter import YahooFinanceAdapter
from trueequity.data.models import (
    BarInterval, DataSource, FundamentalSnapshot, Instrument, PriceBar,
)
from trueequity.config.settings import AppSettings, get_settings
from trueequity.utils.clock import Clock
from trueequity.utils.logger import get_logger

logger = get_logger("composite_provider")

T = TypeVar("T")


class CompositeDataProvider(BaseDataAdapter):
    """
    Decorator over two providers.

    - Profile and fundamentals come from ``rich`` first; missing pieces are
      taken from ``cheap``, which also stands in wholesale when ``rich`` fails.
    - Prices always come from ``cheap``.
    - Healthy while either side is healthy.
    """

    def __init__(self, rich: BaseDataAdapter, cheap: BaseDataAdapter):
        super().__init__(source=DataSource.COMPOSITE)
        self.rich = rich
        self.cheap = cheap

    @property
    def identity(self) -> str:
        return f"composite({self.rich.identity}+{self.cheap.identity})"

    async def connect(self) -> None:
        for adapter in (self.rich, self.cheap):
            try:
                await adapter.connect()
            except Exception as e:
                logger.warning("adapter_connect_failed", adapter=adapter.identity, error=str(e))

    async def disconnect(self) -> None:
        for adapter in (self.rich, self.cheap):
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning("adapter_disconnect_failed", adapter=adapter.identity, error=str(e))

    async def _attempt(
        self, adapter: BaseDataAdapter, op: str, symbol: str, call: Callable[[], Awaitable[T]]
    ) -> Optional[T]:
        """Run one upstream call; a raised error counts as no data."""
        try:
            return await call()
        except Exception as e:
            logger.warning("provider_call_failed", adapter=adapter.identity, op=op, symbol=symbol, error=str(e))
            return None

    async def get_profile(self, symbol: str) -> Optional[Instrument]:
        rich = await self._attempt(self.rich, "profile", symbol, lambda: self.rich.get_profile(symbol))
        if rich is not None and rich.is_complete:
            return rich

        cheap = await self._attempt(self.cheap, "profile", symbol, lambda: self.cheap.get_profile(symbol))
        if rich is None:
            if cheap is None:
                logger.info("profile_not_found", symbol=symbol)
            return cheap
        if cheap is None:
            return rich

        # Only identity fields are borrowed; the rich source's sector/industry/cap stay
        update = {}
        if not rich.name and cheap.name:
            update["name"] = cheap.name
        if not rich.exchange and cheap.exchange:
            update["exchange"] = cheap.exchange
        if update:
            logger.debug("profile_gap_filled", symbol=symbol, fields=sorted(update))
            return rich.model_copy(update=update)
        return rich

    async def get_price_series(
        self, symbol: str, start: date, end: date, interval: BarInterval = BarInterval.DAILY
    ) -> List[PriceBar]:
        bars = await self._attempt(
            self.cheap, "price_series", symbol,
            lambda: self.cheap.get_price_series(symbol, start, end, interval),
        )
        return bars or []

    async def get_latest_price(self, symbol: str) -> Optional[float]:
        return await self._attempt(self.cheap, "latest_price", symbol, lambda: self.cheap.get_latest_price(symbol))

    async def get_fundamentals(self, symbol: str) -> Optional[FundamentalSnapshot]:
        rich = await self._attempt(self.rich, "fundamentals", symbol, lambda: self.rich.get_fundamentals(symbol))
        cheap = await self._attempt(self.cheap, "fundamentals", symbol, lambda: self.cheap.get_fundamentals(symbol))
        if rich is None:
            if cheap is not None:
                logger.info("fundamentals_fallback", symbol=symbol, source=self.cheap.identity)
            return cheap
        merged = rich.fill_gaps(cheap)
        if merged is not rich:
            filled = set(merged.present_fields()) - set(rich.present_fields())
            logger.debug("fundamentals_gap_filled", symbol=symbol, fields=sorted(filled))
        return merged

    async def health_check(self) -> bool:
        for adapter in (self.rich, self.cheap):
            healthy = await self._attempt(adapter, "health", "-", adapter.health_check)
            if healthy:
                return True
        return False


def build_provider(settings: Optional[AppSettings] = None, clock: Optional[Clock] = None) -> BaseDataAdapter:
    """Provider selected by PROVIDER_MODE: hybrid (default), yahoo or alpha_vantage."""
    settings = settings or get_settings()
    mode = settings.data.provider_mode.lower()
    if mode in ("yahoo", "yahoo_finance"):
        return YahooFinanceAdapter()
    if mode in ("alpha_vantage", "alphavantage"):
        return AlphaVantageAdapter(clock=clock)
    if mode != "hybrid":
        logger.warning("unknown_provider_mode", mode=mode, fallback="hybrid")
    return CompositeDataProvider(rich=AlphaVantageAdapter(clock=clock), cheap=YahooFinanceAdapter())

"""
TRUEEQUITY — Yahoo Finance Adapter
Cheap, unauthenticated source. Strong on prices, sparse on fundamentals.
"""
import aiohttp
from typing import Any, Dict, Optional, List
from datetime import date, datetime, time, timedelta, timezone

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.cache.price_cache import PriceCache, get_cache
from trueequity.data.models import (
    BarInterval, DataSource, FundamentalSnapshot, Instrument, PriceBar,
)
from trueequity.config.settings import get_settings
from trueequity.utils.logger import get_logger
from trueequity.utils.helpers import blank_to_none, normalize_symbol, positive_or_none, to_float

logger = get_logger("yahoo_adapter")

HEALTH_CHECK_SYMBOL = "AAPL"


def _epoch(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp())


def _chart_result(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    results = (payload or {}).get("chart", {}).get("result") or []
    return results[0] if results else None


def parse_chart_bars(symbol: str, payload: Dict[str, Any]) -> List[PriceBar]:
    """Turn a chart payload into bars, skipping slots with null or non-positive values."""
    result = _chart_result(payload)
    if result is None:
        return []
    timestamps = result.get("timestamp") or []
    indicators = result.get("indicators", {})
    quotes = indicators.get("quote") or [{}]
    quote = quotes[0]
    adjclose_blocks = indicators.get("adjclose") or []
    adjcloses = adjclose_blocks[0].get("adjclose", []) if adjclose_blocks else []

    columns = {key: quote.get(key) or [] for key in ("open", "high", "low", "close", "volume")}
    bars: List[PriceBar] = []
    for i, ts in enumerate(timestamps):
        values = {}
        for key, series in columns.items():
            values[key] = to_float(series[i]) if i < len(series) else None
        if any(v is None or v <= 0 for v in values.values()):
            continue
        adjusted = to_float(adjcloses[i]) if i < len(adjcloses) else None
        bars.append(
            PriceBar(
                symbol=symbol,
                timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
                open=values["open"],
                high=values["high"],
                low=values["low"],
                close=values["close"],
                adjusted_close=positive_or_none(adjusted),
                volume=values["volume"],
            )
        )
    bars.sort(key=lambda b: b.timestamp)
    return bars


def parse_latest_price(payload: Dict[str, Any]) -> Optional[float]:
    result = _chart_result(payload)
    if result is None:
        return None
    return positive_or_none(to_float(result.get("meta", {}).get("regularMarketPrice")))


def parse_quote_profile(symbol: str, payload: Dict[str, Any]) -> Optional[Instrument]:
    results = (payload or {}).get("quoteResponse", {}).get("result") or []
    if not results:
        return None
    quote = results[0]
    return Instrument(
        symbol=symbol,
        name=blank_to_none(quote.get("longName")) or blank_to_none(quote.get("shortName")),
        exchange=blank_to_none(quote.get("fullExchangeName")) or blank_to_none(quote.get("exchange")),
        sector=blank_to_none(quote.get("sector")),
        industry=blank_to_none(quote.get("industry")),
        market_cap=positive_or_none(to_float(quote.get("marketCap"))),
    )


def parse_meta_profile(symbol: str, payload: Dict[str, Any]) -> Optional[Instrument]:
    result = _chart_result(payload)
    if result is None:
        return None
    meta = result.get("meta", {})
    return Instrument(
        symbol=symbol,
        name=blank_to_none(meta.get("longName")) or blank_to_none(meta.get("shortName")),
        exchange=blank_to_none(meta.get("fullExchangeName")) or blank_to_none(meta.get("exchangeName")),
        sector=blank_to_none(meta.get("sector")),
        industry=blank_to_none(meta.get("industry")),
        market_cap=positive_or_none(to_float(meta.get("marketCap"))),
    )


def parse_meta_fundamentals(symbol: str, payload: Dict[str, Any], today: date) -> Optional[FundamentalSnapshot]:
    """Sparse ratios from chart meta. Returns None unless P/E, EPS or share count is present."""
    result = _chart_result(payload)
    if result is None:
        return None
    meta = result.get("meta", {})

    pe = to_float(meta.get("trailingPE"))
    if pe is None:
        pe = to_float(meta.get("forwardPE"))

    peg = None
    growth = to_float(meta.get("earningsQuarterlyGrowth"))
    if pe is not None and growth is not None:
        growth_pct = growth * 100 if abs(growth) < 1 else growth
        if growth_pct > 0:
            peg = pe / growth_pct

    eps = to_float(meta.get("trailingEPS"))
    if eps is None:
        eps = to_float(meta.get("forwardEPS"))
    shares = to_float(meta.get("sharesOutstanding"))

    if pe is None and eps is None and shares is None:
        return None

    return FundamentalSnapshot(
        symbol=symbol,
        period_type="annual",
        period_end_date=today,
        pe_ratio=pe,
        peg_ratio=peg,
        price_to_book=to_float(meta.get("priceToBook")),
        price_to_sales=to_float(meta.get("priceToSalesTrailing12Months")),
        ev_to_ebitda=to_float(meta.get("enterpriseToEbitda")),
        eps_ttm=eps,
        shares_outstanding=shares,
        float_shares=to_float(meta.get("floatShares")),
    )


class YahooFinanceAdapter(BaseDataAdapter):
    """Yahoo Finance chart and quote adapter. Serves prices and sparse ratios."""

    def __init__(self, cache: Optional[PriceCache] = None):
        super().__init__(source=DataSource.YAHOO)
        self.settings = get_settings().data
        self.chart_url = self.settings.yahoo_chart_url
        self.quote_url = self.settings.yahoo_quote_url
        self.cache = cache or get_cache()

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
        self._session = aiohttp.ClientSession(
            timeout=timeout, headers={"User-Agent": self.settings.user_agent}
        )
        logger.info("yahoo_adapter_connected")

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("yahoo_adapter_disconnected")

    async def _get_json(self, url: str, params: Dict[str, Any], symbol: str, op: str) -> Optional[Dict[str, Any]]:
        if not self._session:
            await self.connect()
        async with self._session.get(url, params=params) as resp:
            if resp.status != 200:
                logger.warning("yahoo_http_error", op=op, status=resp.status, symbol=symbol)
                return None
            return await resp.json(content_type=None)

    async def _chart(self, symbol: str, op: str, **params) -> Optional[Dict[str, Any]]:
        params.setdefault("interval", BarInterval.DAILY.value)
        if "period1" not in params:
            params.setdefault("range", "1d")
        return await self._get_json(f"{self.chart_url}/{symbol}", params, symbol, op)

    async def get_profile(self, symbol: str) -> Optional[Instrument]:
        symbol = normalize_symbol(symbol)
        try:
            payload = await self._get_json(self.quote_url, {"symbols": symbol}, symbol, "quote")
            profile = parse_quote_profile(symbol, payload) if payload else None
            if profile is not None and profile.name:
                return profile
            # Quote endpoint is often blocked; chart meta still carries names
            payload = await self._chart(symbol, "profile")
            return parse_meta_profile(symbol, payload) if payload else profile
        except Exception as e:
            logger.error("yahoo_profile_exception", symbol=symbol, error=str(e))
            return None

    async def get_price_series(
        self, symbol: str, start: date, end: date, interval: BarInterval = BarInterval.DAILY
    ) -> List[PriceBar]:
        symbol = normalize_symbol(symbol)
        cached = self.cache.get_series(symbol, interval, start, end)
        if cached is not None:
            return cached
        try:
            payload = await self._chart(
                symbol,
                "series",
                period1=_epoch(start),
                period2=_epoch(end + timedelta(days=1)),
                interval=interval.value,
            )
            if not payload:
                return []
            bars = parse_chart_bars(symbol, payload)
            self.cache.put_series(symbol, interval, start, end, bars)
            logger.debug("yahoo_series_fetched", symbol=symbol, interval=interval.value, count=len(bars))
            return bars
        except Exception as e:
            logger.error("yahoo_series_exception", symbol=symbol, interval=interval.value, error=str(e))
            return []

    async def get_latest_price(self, symbol: str) -> Optional[float]:
        symbol = normalize_symbol(symbol)
        cached = self.cache.get_latest_price(symbol)
        if cached is not None:
            return cached
        try:
            payload = await self._chart(symbol, "latest_price")
            price = parse_latest_price(payload) if payload else None
            if price is not None:
                self.cache.put_latest_price(symbol, price)
            return price
        except Exception as e:
            logger.error("yahoo_price_exception", symbol=symbol, error=str(e))
            return None

    async def get_fundamentals(self, symbol: str) -> Optional[FundamentalSnapshot]:
        symbol = normalize_symbol(symbol)
        try:
            payload = await self._chart(symbol, "fundamentals")
            if not payload:
                return None
            return parse_meta_fundamentals(symbol, payload, datetime.now(timezone.utc).date())
        except Exception as e:
            logger.error("yahoo_fundamentals_exception", symbol=symbol, error=str(e))
            return None

    async def health_check(self) -> bool:
        try:
            payload = await self._chart(HEALTH_CHECK_SYMBOL, "health")
            return parse_latest_price(payload) is not None if payload else False
        except Exception as e:
            logger.warning("yahoo_health_exception", error=str(e))
            return False

"""
TRUEEQUITY — Alpha Vantage Adapter
Rich fundamentals source behind an API key, 5 calls/minute and a daily quota.
"""
import aiohttp
from typing import Any, Dict, Optional, List
from datetime import date, datetime, time, timezone

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.models import (
    BarInterval, DataSource, FundamentalSnapshot, Instrument, PriceBar,
)
from trueequity.data.rate_limiter import RateLimiter
from trueequity.config.settings import get_settings
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.errors import ProviderError
from trueequity.utils.logger import get_logger
from trueequity.utils.helpers import (
    blank_to_none, normalize_symbol, positive_or_none, safe_divide, to_float,
)

logger = get_logger("alpha_vantage_adapter")


def check_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Raise ProviderError for throttling notes and error messages."""
    if not isinstance(payload, dict):
        raise ProviderError("alpha_vantage", "unexpected payload")
    for key in ("Note", "Information"):
        note = payload.get(key)
        if note and "call frequency" in str(note).lower():
            raise ProviderError("alpha_vantage", "rate limited")
        if note and key == "Information":
            raise ProviderError("alpha_vantage", str(note))
    if "Error Message" in payload:
        raise ProviderError("alpha_vantage", str(payload["Error Message"]))
    return payload


def _percent(raw: Any) -> Optional[float]:
    value = to_float(raw)
    return value * 100 if value is not None else None


def _annual_reports(statement: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not statement:
        return []
    reports = statement.get("annualReports")
    return reports if isinstance(reports, list) else []


def _cagr(latest: Optional[float], oldest: Optional[float], years: int) -> Optional[float]:
    if latest is None or oldest is None or latest <= 0 or oldest <= 0:
        return None
    return ((latest / oldest) ** (1.0 / years) - 1.0) * 100


def parse_overview_profile(symbol: str, overview: Dict[str, Any]) -> Optional[Instrument]:
    if not overview or not blank_to_none(overview.get("Symbol")):
        return None
    return Instrument(
        symbol=symbol,
        name=blank_to_none(overview.get("Name")),
        exchange=blank_to_none(overview.get("Exchange")),
        sector=blank_to_none(overview.get("Sector")),
        industry=blank_to_none(overview.get("Industry")),
        market_cap=positive_or_none(to_float(overview.get("MarketCapitalization"))),
    )


def build_fundamentals(
    symbol: str,
    income: Dict[str, Any],
    balance: Optional[Dict[str, Any]],
    overview: Optional[Dict[str, Any]],
    today: date,
) -> FundamentalSnapshot:
    """Assemble one annual snapshot from the statement and overview payloads."""
    fields: Dict[str, Any] = {}

    income_reports = _annual_reports(income)
    period_end = today
    if income_reports:
        try:
            period_end = date.fromisoformat(str(income_reports[0].get("fiscalDateEnding")))
        except ValueError:
            pass

        latest = income_reports[0]
        revenue = to_float(latest.get("totalRevenue"))
        net_income = to_float(latest.get("netIncome"))
        fields["revenue"] = revenue
        fields["net_income"] = net_income
        if revenue is not None and revenue > 0 and net_income is not None:
            fields["profit_margin"] = net_income / revenue * 100

        if len(income_reports) > 1:
            prior = to_float(income_reports[1].get("netIncome"))
            if net_income is not None and prior:
                fields["net_income_growth_yoy"] = (net_income - prior) / abs(prior) * 100
        if len(income_reports) > 3:
            oldest = income_reports[3]
            fields["revenue_growth_3y"] = _cagr(revenue, to_float(oldest.get("totalRevenue")), 3)
            fields["earnings_growth_3y"] = _cagr(net_income, to_float(oldest.get("netIncome")), 3)

    balance_reports = _annual_reports(balance)
    if balance_reports:
        sheet = balance_reports[0]
        cash = to_float(sheet.get("cashAndShortTermInvestments"))
        if cash is None:
            cash = to_float(sheet.get("cashAndCashEquivalentsAtCarryingValue"))
        fields["total_cash"] = cash

        debt = to_float(sheet.get("totalDebt"))
        if debt is None:
            short_term = to_float(sheet.get("shortTermDebt"))
            long_term = to_float(sheet.get("longTermDebt"))
            if short_term is not None or long_term is not None:
                debt = (short_term or 0.0) + (long_term or 0.0)
        fields["total_debt"] = debt

        equity = to_float(sheet.get("totalShareholderEquity"))
        if debt is not None and debt > 0 and equity:
            fields["debt_to_equity"] = debt / equity
        fields["current_ratio"] = safe_divide(
            to_float(sheet.get("totalCurrentAssets")),
            to_float(sheet.get("totalCurrentLiabilities")),
        )

    if overview:
        fields.update(
            pe_ratio=to_float(overview.get("PERatio")),
            peg_ratio=to_float(overview.get("PEGRatio")),
            price_to_book=to_float(overview.get("PriceToBookRatio")),
            price_to_sales=to_float(overview.get("PriceToSalesRatioTTM")),
            ev_to_ebitda=to_float(overview.get("EVToEBITDA")),
            eps_ttm=to_float(overview.get("EPS")),
            shares_outstanding=to_float(overview.get("SharesOutstanding")),
            roe=_percent(overview.get("ReturnOnEquityTTM")),
            roa=_percent(overview.get("ReturnOnAssetsTTM")),
            operating_margin=_percent(overview.get("OperatingMarginTTM")),
            revenue_growth_yoy=_percent(overview.get("QuarterlyRevenueGrowthYOY")),
            eps_growth_yoy=_percent(overview.get("QuarterlyEarningsGrowthYOY")),
        )
        roic = _percent(overview.get("ReturnOnInvestedCapitalTTM"))
        if roic is None:
            roic = _percent(overview.get("ReturnOnInvestedCapital"))
        fields["roic"] = roic
        gross = safe_divide(to_float(overview.get("GrossProfitTTM")), to_float(overview.get("RevenueTTM")))
        if gross is not None:
            fields["gross_margin"] = gross * 100

    fields["cash_per_share"] = safe_divide(fields.get("total_cash"), fields.get("shares_outstanding"))

    return FundamentalSnapshot(
        symbol=symbol,
        period_type="annual",
        period_end_date=period_end,
        fiscal_year=period_end.year,
        **fields,
    )


def parse_daily_series(symbol: str, payload: Dict[str, Any], start: date, end: date) -> List[PriceBar]:
    series = payload.get("Time Series (Daily)") or {}
    bars: List[PriceBar] = []
    for day_text, row in series.items():
        try:
            day = date.fromisoformat(day_text)
        except ValueError:
            continue
        if day < start or day > end:
            continue
        values = [to_float(row.get(k)) for k in ("1. open", "2. high", "3. low", "4. close", "5. volume")]
        if any(v is None for v in values):
            continue
        o, h, l, c, v = values
        bars.append(
            PriceBar(
                symbol=symbol,
                timestamp=datetime.combine(day, time.min, tzinfo=timezone.utc),
                open=o, high=h, low=l, close=c, volume=v,
            )
        )
    bars.sort(key=lambda b: b.timestamp)
    return bars


class AlphaVantageAdapter(BaseDataAdapter):
    """Alpha Vantage adapter for profiles and statements. Every request passes the rate limiter."""

    def __init__(self, limiter: Optional[RateLimiter] = None, clock: Optional[Clock] = None):
        super().__init__(source=DataSource.ALPHA_VANTAGE)
        self.settings = get_settings().data
        self.api_key = self.settings.alpha_vantage_api_key
        self.base_url = self.settings.alpha_vantage_base_url
        self.clock = clock or SystemClock()
        self.limiter = limiter or RateLimiter(
            "alpha_vantage",
            self.settings.alpha_vantage_min_interval_seconds,
            self.settings.alpha_vantage_daily_limit,
            clock=self.clock,
        )

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
        self._session = aiohttp.ClientSession(
            timeout=timeout, headers={"User-Agent": self.settings.user_agent}
        )
        logger.info("alpha_vantage_adapter_connected", has_key=bool(self.api_key))

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("alpha_vantage_adapter_disconnected")

    async def _query(self, function: str, symbol: str) -> Optional[Dict[str, Any]]:
        """One API call. None when throttled, out of quota or answered with an error."""
        if not self.api_key:
            return None
        if not await self.limiter.acquire():
            return None
        if not self._session:
            await self.connect()

        params = {"function": function, "symbol": symbol, "apikey": self.api_key}
        async with self._session.get(self.base_url, params=params) as resp:
            if resp.status != 200:
                logger.warning("alpha_vantage_http_error", function=function, status=resp.status, symbol=symbol)
                return None
            payload = await resp.json(content_type=None)
        try:
            return check_payload(payload)
        except ProviderError as e:
            logger.warning("alpha_vantage_rejected", function=function, symbol=symbol, error=str(e))
            return None

    async def get_profile(self, symbol: str) -> Optional[Instrument]:
        symbol = normalize_symbol(symbol)
        try:
            overview = await self._query("OVERVIEW", symbol)
            return parse_overview_profile(symbol, overview) if overview else None
        except Exception as e:
            logger.error("alpha_vantage_profile_exception", symbol=symbol, error=str(e))
            return None

    async def get_fundamentals(self, symbol: str) -> Optional[FundamentalSnapshot]:
        symbol = normalize_symbol(symbol)
        try:
            income = await self._query("INCOME_STATEMENT", symbol)
            if not _annual_reports(income):
                return None
            balance = await self._query("BALANCE_SHEET", symbol)
            overview = await self._query("OVERVIEW", symbol)
            return build_fundamentals(symbol, income, balance, overview, self.clock.today())
        except Exception as e:
            logger.error("alpha_vantage_fundamentals_exception", symbol=symbol, error=str(e))
            return None

    async def get_price_series(
        self, symbol: str, start: date, end: date, interval: BarInterval = BarInterval.DAILY
    ) -> List[PriceBar]:
        # Intraday and aggregated bars are premium endpoints
        if interval != BarInterval.DAILY:
            return []
        symbol = normalize_symbol(symbol)
        try:
            payload = await self._query("TIME_SERIES_DAILY", symbol)
            return parse_daily_series(symbol, payload, start, end) if payload else []
        except Exception as e:
            logger.error("alpha_vantage_series_exception", symbol=symbol, error=str(e))
            return []

    async def get_latest_price(self, symbol: str) -> Optional[float]:
        symbol = normalize_symbol(symbol)
        try:
            payload = await self._query("GLOBAL_QUOTE", symbol)
            if not payload:
                return None
            return positive_or_none(to_float(payload.get("Global Quote", {}).get("05. price")))
        except Exception as e:
            logger.error("alpha_vantage_price_exception", symbol=symbol, error=str(e))
            return None

    async def health_check(self) -> bool:
        return bool(self.api_key) and not self.limiter.exhausted()

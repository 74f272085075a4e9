"""
TRUEEQUITY — Unit Tests for Provider Adapters
Payload parsing only; no network.
"""
import pytest
from datetime import date, datetime, timezone

from trueequity.data.adapters.alpha_vantage_adapter import (
    AlphaVantageAdapter, build_fundamentals, check_payload, parse_daily_series,
    parse_overview_profile,
)
from trueequity.data.adapters.yahoo_adapter import (
    YahooFinanceAdapter, parse_chart_bars, parse_latest_price, parse_meta_fundamentals,
    parse_meta_profile, parse_quote_profile,
)
from trueequity.data.cache.price_cache import PriceCache
from trueequity.data.models import BarInterval
from trueequity.data.rate_limiter import RateLimiter
from trueequity.utils.errors import ProviderError

TODAY = date(2024, 6, 3)


def _ts(day: int) -> int:
    return int(datetime(2024, 6, day, tzinfo=timezone.utc).timestamp())


def _chart(meta=None, timestamps=None, quote=None, adjclose=None):
    result = {"meta": meta or {}}
    if timestamps is not None:
        result["timestamp"] = timestamps
        result["indicators"] = {"quote": [quote or {}]}
        if adjclose is not None:
            result["indicators"]["adjclose"] = [{"adjclose": adjclose}]
    return {"chart": {"result": [result], "error": None}}


class TestYahooParsing:
    def test_chart_bars_skip_null_slots(self):
        payload = _chart(
            timestamps=[_ts(4), _ts(3), _ts(5)],
            quote={
                "open": [11.0, 10.0, 12.0],
                "high": [12.0, 11.0, 13.0],
                "low": [10.5, 9.5, 11.5],
                "close": [11.5, 10.5, None],
                "volume": [1000, 900, 1100],
            },
            adjclose=[11.4, 10.4, None],
        )
        bars = parse_chart_bars("AAPL", payload)
        assert [b.close for b in bars] == [10.5, 11.5]
        assert bars[0].trade_date == date(2024, 6, 3)
        assert bars[1].adjusted_close == 11.4

    def test_chart_without_result(self):
        assert parse_chart_bars("AAPL", {"chart": {"result": None}}) == []
        assert parse_latest_price({}) is None

    def test_latest_price(self):
        assert parse_latest_price(_chart(meta={"regularMarketPrice": 189.5})) == 189.5
        assert parse_latest_price(_chart(meta={"regularMarketPrice": 0})) is None

    def test_quote_profile_falls_back_to_short_name(self):
        payload = {"quoteResponse": {"result": [{
            "shortName": "Apple", "fullExchangeName": "NasdaqGS", "marketCap": 3e12,
        }]}}
        profile = parse_quote_profile("AAPL", payload)
        assert profile.name == "Apple"
        assert profile.exchange == "NasdaqGS"
        assert profile.market_cap == 3e12
        assert parse_quote_profile("AAPL", {"quoteResponse": {"result": []}}) is None

    def test_meta_profile(self):
        profile = parse_meta_profile("AAPL", _chart(meta={"longName": "Apple Inc.", "exchangeName": "NMS"}))
        assert profile.name == "Apple Inc."
        assert profile.exchange == "NMS"
        assert profile.is_complete

    def test_meta_fundamentals_derives_peg(self):
        snap = parse_meta_fundamentals(
            "AAPL", _chart(meta={"trailingPE": 20.0, "earningsQuarterlyGrowth": 0.1, "trailingEPS": 6.5}), TODAY,
        )
        assert snap.pe_ratio == 20.0
        assert snap.peg_ratio == pytest.approx(2.0)
        assert snap.eps_ttm == 6.5
        assert snap.period_end_date == TODAY

    def test_meta_fundamentals_negative_growth_has_no_peg(self):
        snap = parse_meta_fundamentals("AAPL", _chart(meta={"trailingPE": 20.0, "earningsQuarterlyGrowth": -0.2}), TODAY)
        assert snap.peg_ratio is None

    def test_meta_fundamentals_empty(self):
        assert parse_meta_fundamentals("AAPL", _chart(meta={"regularMarketPrice": 10}), TODAY) is None


class TestYahooAdapter:
    @pytest.mark.asyncio
    async def test_cached_series_skips_network(self, bar_factory):
        cache = PriceCache(ttl=60)
        bars = bar_factory("AAPL", [1.0, 2.0], TODAY)
        cache.put_series("AAPL", BarInterval.DAILY, date(2024, 6, 1), TODAY, bars)
        adapter = YahooFinanceAdapter(cache=cache)
        assert await adapter.get_price_series("aapl", date(2024, 6, 1), TODAY) == bars
        assert adapter._session is None

    @pytest.mark.asyncio
    async def test_cached_latest_price(self):
        cache = PriceCache(ttl=60)
        cache.put_latest_price("AAPL", 190.0)
        adapter = YahooFinanceAdapter(cache=cache)
        assert await adapter.get_latest_price("AAPL") == 190.0
        assert cache.stats["price_entries"] == 1

    def test_empty_series_not_cached(self):
        cache = PriceCache(ttl=60)
        cache.put_series("AAPL", BarInterval.DAILY, TODAY, TODAY, [])
        assert cache.get_series("AAPL", BarInterval.DAILY, TODAY, TODAY) is None

    def test_clear_empties_both_caches(self, bar_factory):
        cache = PriceCache(ttl=60)
        cache.put_latest_price("AAPL", 190.0)
        cache.put_series("AAPL", BarInterval.DAILY, TODAY, TODAY, bar_factory("AAPL", [1.0], TODAY))
        assert cache.stats == {"price_entries": 1, "series_entries": 1}
        cache.clear()
        assert cache.stats == {"price_entries": 0, "series_entries": 0}


class TestAlphaVantagePayloads:
    @pytest.mark.parametrize("payload", [
        {"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute"},
        {"Information": "This is a premium endpoint."},
        {"Error Message": "Invalid API call."},
        ["not", "a", "dict"],
    ])
    def test_rejected(self, payload):
        with pytest.raises(ProviderError):
            check_payload(payload)

    def test_accepted(self):
        payload = {"Symbol": "AAPL"}
        assert check_payload(payload) is payload

    def test_overview_profile(self):
        profile = parse_overview_profile("AAPL", {
            "Symbol": "AAPL", "Name": "Apple Inc", "Exchange": "NASDAQ",
            "Sector": "TECHNOLOGY", "MarketCapitalization": "None",
        })
        assert profile.name == "Apple Inc"
        assert profile.market_cap is None
        assert parse_overview_profile("AAPL", {}) is None

    def test_daily_series_window(self):
        payload = {"Time Series (Daily)": {
            "2024-06-03": {"1. open": "10", "2. high": "11", "3. low": "9", "4. close": "10.5", "5. volume": "100"},
            "2024-05-31": {"1. open": "9", "2. high": "10", "3. low": "8", "4. close": "9.5", "5. volume": "100"},
            "2024-05-01": {"1. open": "5", "2. high": "6", "3. low": "4", "4. close": "5.5", "5. volume": "100"},
        }}
        bars = parse_daily_series("AAPL", payload, date(2024, 5, 30), TODAY)
        assert [b.close for b in bars] == [9.5, 10.5]


class TestBuildFundamentals:
    @pytest.fixture
    def income(self):
        return {"annualReports": [
            {"fiscalDateEnding": "2023-09-30", "totalRevenue": "400", "netIncome": "40"},
            {"fiscalDateEnding": "2022-09-30", "totalRevenue": "300", "netIncome": "30"},
            {"fiscalDateEnding": "2021-09-30", "totalRevenue": "250", "netIncome": "25"},
            {"fiscalDateEnding": "2020-09-30", "totalRevenue": "200", "netIncome": "20"},
        ]}

    @pytest.fixture
    def balance(self):
        return {"annualReports": [{
            "cashAndShortTermInvestments": "None",
            "cashAndCashEquivalentsAtCarryingValue": "60",
            "shortTermDebt": "10",
            "longTermDebt": "40",
            "totalShareholderEquity": "100",
            "totalCurrentAssets": "300",
            "totalCurrentLiabilities": "150",
        }]}

    @pytest.fixture
    def overview(self):
        return {
            "PERatio": "25.5", "PEGRatio": "-", "PriceToBookRatio": "40.1",
            "ReturnOnEquityTTM": "0.25", "ReturnOnInvestedCapital": "0.2",
            "SharesOutstanding": "30", "GrossProfitTTM": "160", "RevenueTTM": "400",
            "QuarterlyRevenueGrowthYOY": "0.1", "QuarterlyEarningsGrowthYOY": "-0.05",
        }

    def test_full_snapshot(self, income, balance, overview):
        snap = build_fundamentals("AAPL", income, balance, overview, TODAY)
        assert snap.period_end_date == date(2023, 9, 30)
        assert snap.fiscal_year == 2023
        assert snap.revenue == 400
        assert snap.profit_margin == pytest.approx(10.0)
        assert snap.net_income_growth_yoy == pytest.approx(33.333, rel=1e-3)
        assert snap.revenue_growth_3y == pytest.approx(25.99, rel=1e-3)
        assert snap.earnings_growth_3y == pytest.approx(25.99, rel=1e-3)
        assert snap.total_cash == 60
        assert snap.total_debt == 50
        assert snap.debt_to_equity == pytest.approx(0.5)
        assert snap.current_ratio == pytest.approx(2.0)
        assert snap.pe_ratio == 25.5
        assert snap.peg_ratio is None
        assert snap.roe == pytest.approx(25.0)
        assert snap.roic == pytest.approx(20.0)
        assert snap.gross_margin == pytest.approx(40.0)
        assert snap.cash_per_share == pytest.approx(2.0)
        assert snap.revenue_growth_yoy == pytest.approx(10.0)
        assert snap.eps_growth_yoy == pytest.approx(-5.0)

    def test_income_only(self, income):
        snap = build_fundamentals("AAPL", income, None, None, TODAY)
        assert snap.revenue == 400
        assert snap.debt_to_equity is None
        assert snap.pe_ratio is None

    def test_zero_debt_has_no_leverage_ratio(self, income, balance):
        balance["annualReports"][0].update(shortTermDebt="0", longTermDebt="0")
        snap = build_fundamentals("AAPL", income, balance, None, TODAY)
        assert snap.total_debt == 0
        assert snap.debt_to_equity is None


class TestAlphaVantageAdapter:
    @pytest.mark.asyncio
    async def test_without_key_returns_nothing(self, clock):
        adapter = AlphaVantageAdapter(clock=clock)
        adapter.api_key = ""
        assert await adapter.get_fundamentals("AAPL") is None
        assert await adapter.get_profile("AAPL") is None
        assert await adapter.health_check() is False
        assert adapter._session is None

    @pytest.mark.asyncio
    async def test_spent_quota_skips_network(self, clock):
        limiter = RateLimiter("alpha_vantage", 0, daily_limit=1, clock=clock)
        assert await limiter.acquire()
        adapter = AlphaVantageAdapter(limiter=limiter, clock=clock)
        adapter.api_key = "demo"
        assert await adapter.get_latest_price("AAPL") is None
        assert await adapter.health_check() is False
        assert adapter._session is None

    @pytest.mark.asyncio
    async def test_non_daily_interval_is_unsupported(self, clock):
        adapter = AlphaVantageAdapter(clock=clock)
        adapter.api_key = "demo"
        assert await adapter.get_price_series("AAPL", TODAY, TODAY, BarInterval.HOURLY) == []
        assert adapter.limiter.status.used == 0

"""
TRUEEQUITY — Data Models for Market Data
Immutable value objects shared by providers, storage and engines.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Tuple
from datetime import date, datetime
from enum import Enum


class DataSource(str, Enum):
    YAHOO = "yahoo"
    ALPHA_VANTAGE = "alpha_vantage"
    COMPOSITE = "composite"


class BarInterval(str, Enum):
    """Bar granularities understood by the providers."""
    HOURLY = "60m"
    DAILY = "1d"
    WEEKLY = "1wk"
    MONTHLY = "1mo"


class Timeframe(str, Enum):
    """RSI timeframe tags as exposed to readers."""
    H1 = "1h"
    M30 = "30m"
    H2 = "2h"
    D1 = "1d"


class RefreshKind(str, Enum):
    PROFILE = "profile"
    PRICES = "prices"
    FUNDAMENTALS = "fundamentals"
    SCORE = "score"


class Instrument(BaseModel):
    """Company profile. Providers may return a partial one (no name or exchange)."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    name: Optional[str] = None
    exchange: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.name) and bool(self.exchange)


class PriceBar(BaseModel):
    """Single OHLCV bar. Invalid bars can be built; ingestion drops them."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    adjusted_close: Optional[float] = None
    volume: float

    @property
    def trade_date(self) -> date:
        return self.timestamp.date()

    def is_valid(self) -> bool:
        if not self.symbol or self.timestamp is None:
            return False
        if min(self.open, self.high, self.low, self.close) <= 0:
            return False
        if self.volume <= 0:
            return False
        if self.high < self.low:
            return False
        return self.low <= self.close <= self.high


# Fields that make up the financial profile; identity fields are excluded.
FUNDAMENTAL_FIELDS: Tuple[str, ...] = (
    "fiscal_year", "fiscal_quarter",
    "pe_ratio", "peg_ratio", "price_to_book", "price_to_sales", "ev_to_ebitda",
    "eps_ttm", "eps_growth_yoy", "eps_growth_qoq",
    "revenue", "revenue_growth_yoy", "revenue_growth_qoq",
    "net_income", "net_income_growth_yoy", "profit_margin",
    "total_cash", "total_debt", "cash_per_share", "debt_to_equity", "current_ratio",
    "roe", "roic", "roa", "gross_margin", "operating_margin",
    "revenue_growth_3y", "earnings_growth_3y",
    "shares_outstanding", "float_shares",
)


class FundamentalSnapshot(BaseModel):
    """One reporting period. Every metric is optional; absence is expected."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    period_type: str = "annual"  # annual, quarterly
    period_end_date: Optional[date] = None
    fiscal_year: Optional[int] = None
    fiscal_quarter: Optional[int] = None

    # Valuation
    pe_ratio: Optional[float] = None
    peg_ratio: Optional[float] = None
    price_to_book: Optional[float] = None
    price_to_sales: Optional[float] = None
    ev_to_ebitda: Optional[float] = None

    # Earnings and revenue
    eps_ttm: Optional[float] = None
    eps_growth_yoy: Optional[float] = None
    eps_growth_qoq: Optional[float] = None
    revenue: Optional[float] = None
    revenue_growth_yoy: Optional[float] = None
    revenue_growth_qoq: Optional[float] = None
    net_income: Optional[float] = None
    net_income_growth_yoy: Optional[float] = None
    profit_margin: Optional[float] = None

    # Balance sheet
    total_cash: Optional[float] = None
    total_debt: Optional[float] = None
    cash_per_share: Optional[float] = None
    debt_to_equity: Optional[float] = None
    current_ratio: Optional[float] = None

    # Returns and margins
    roe: Optional[float] = None
    roic: Optional[float] = None
    roa: Optional[float] = None
    gross_margin: Optional[float] = None
    operating_margin: Optional[float] = None

    # Long-range growth
    revenue_growth_3y: Optional[float] = None
    earnings_growth_3y: Optional[float] = None

    shares_outstanding: Optional[float] = None
    float_shares: Optional[float] = None

    def fill_gaps(self, other: Optional["FundamentalSnapshot"]) -> "FundamentalSnapshot":
        """Return a copy whose null fields are taken from ``other``. Present values win."""
        if other is None:
            return self
        update = {
            name: getattr(other, name)
            for name in FUNDAMENTAL_FIELDS
            if getattr(self, name) is None and getattr(other, name) is not None
        }
        if not update:
            return self
        return self.model_copy(update=update)

    def present_fields(self) -> Tuple[str, ...]:
        return tuple(name for name in FUNDAMENTAL_FIELDS if getattr(self, name) is not None)


class ScoreSnapshot(BaseModel):
    """Multi-factor evaluation of one symbol. Only the latest is kept."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    calculated_at: datetime

    valuation_category: str
    valuation_score: float = Field(ge=0, le=100)
    health_score: float = Field(ge=0, le=100)
    health_grade: str
    growth_score: float = Field(ge=0, le=100)
    growth_grade: str
    risk_score: float = Field(ge=0, le=100)
    risk_grade: str
    overall_score: float = Field(ge=0, le=100)
    overall_grade: str

    pe_score: Optional[float] = None
    peg_score: Optional[float] = None
    debt_score: Optional[float] = None
    profitability_score: Optional[float] = None
    growth_rate_score: Optional[float] = None
    volatility_score: Optional[float] = None

    @property
    def recommendation(self) -> str:
        return recommendation_for(self.overall_score)


class IndicatorSnapshot(BaseModel):
    """One RSI reading for a symbol, day and timeframe."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    as_of: date
    timeframe: Timeframe
    rsi: float = Field(ge=0, le=100)


def recommendation_for(overall_score: Optional[float]) -> str:
    """BUY >= 70, HOLD >= 50, SELL >= 30, else AVOID."""
    if overall_score is None:
        return "AVOID"
    if overall_score >= 70:
        return "BUY"
    elif overall_score >= 50:
        return "HOLD"
    elif overall_score >= 30:
        return "SELL"
    return "AVOID"

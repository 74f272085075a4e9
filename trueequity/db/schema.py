"""
TRUEEQUITY — Database Schema Design
SQLAlchemy models for instruments, prices, fundamentals, scores and indicators.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Date, DateTime, ForeignKey,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InstrumentRecord(Base):
    """One tradable symbol."""
    __tablename__ = "stocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    exchange = Column(String(64), nullable=False, default="NASDAQ")
    sector = Column(String(128))
    industry = Column(String(128))
    market_cap = Column(Float)
    is_active = Column(Boolean, default=True)
    added_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now)


class PriceBarRecord(Base):
    """Daily OHLCV bar, one per symbol and trading date."""
    __tablename__ = "stock_prices"

    symbol = Column(String(16), ForeignKey("stocks.symbol"), primary_key=True)
    date = Column(Date, primary_key=True)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    adjusted_close = Column(Float)
    volume = Column(Float, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (
        Index("idx_prices_symbol_date", "symbol", "date"),
    )


class FundamentalRecord(Base):
    """Financial profile for one reporting period."""
    __tablename__ = "stock_financials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), ForeignKey("stocks.symbol"), nullable=False, index=True)
    period_type = Column(String(16), nullable=False)  # annual, quarterly
    period_end_date = Column(Date, nullable=False)
    fiscal_year = Column(Integer)
    fiscal_quarter = Column(Integer)

    pe_ratio = Column(Float)
    peg_ratio = Column(Float)
    price_to_book = Column(Float)
    price_to_sales = Column(Float)
    ev_to_ebitda = Column(Float)

    eps_ttm = Column(Float)
    eps_growth_yoy = Column(Float)
    eps_growth_qoq = Column(Float)
    revenue = Column(Float)
    revenue_growth_yoy = Column(Float)
    revenue_growth_qoq = Column(Float)
    net_income = Column(Float)
    net_income_growth_yoy = Column(Float)
    profit_margin = Column(Float)

    total_cash = Column(Float)
    total_debt = Column(Float)
    cash_per_share = Column(Float)
    debt_to_equity = Column(Float)
    current_ratio = Column(Float)

    roe = Column(Float)
    roic = Column(Float)
    roa = Column(Float)
    gross_margin = Column(Float)
    operating_margin = Column(Float)

    revenue_growth_3y = Column(Float)
    earnings_growth_3y = Column(Float)

    shares_outstanding = Column(Float)
    float_shares = Column(Float)

    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (
        UniqueConstraint("symbol", "period_type", "period_end_date", name="uq_financials_period"),
    )


class ScoreRecord(Base):
    """Latest multi-factor score; replaced wholesale on every recalculation."""
    __tablename__ = "stock_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), ForeignKey("stocks.symbol"), nullable=False, index=True)
    calculated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    valuation_category = Column(String(16))
    valuation_score = Column(Float)
    health_score = Column(Float)
    health_grade = Column(String(4))
    growth_score = Column(Float)
    growth_grade = Column(String(4))
    risk_score = Column(Float)
    risk_grade = Column(String(4))
    overall_score = Column(Float)
    overall_grade = Column(String(4))

    pe_score = Column(Float)
    peg_score = Column(Float)
    debt_score = Column(Float)
    profitability_score = Column(Float)
    growth_rate_score = Column(Float)
    volatility_score = Column(Float)


class IndicatorRecord(Base):
    """RSI reading per symbol, day and timeframe."""
    __tablename__ = "technical_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), ForeignKey("stocks.symbol"), nullable=False)
    date = Column(Date, nullable=False)
    timeframe = Column(String(8), nullable=False)
    rsi = Column(Float, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (
        UniqueConstraint("symbol", "date", "timeframe", name="uq_indicator_day_timeframe"),
        Index("idx_indicators_symbol_timeframe", "symbol", "timeframe"),
    )


async def init_db(db_url: str, echo: bool = False) -> async_sessionmaker:
    """Initialize database and create all tables."""
    engine_kwargs = {"echo": echo}
    if db_url.startswith("sqlite") and (db_url.endswith("://") or ":memory:" in db_url):
        # One shared connection, or every session would see its own empty database
        engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    engine = create_async_engine(db_url, **engine_kwargs)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

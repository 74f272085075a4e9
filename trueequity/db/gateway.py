"""
TRUEEQUITY — Storage Gateway
Async persistence for the five pipeline entities. Every write is an upsert on
the entity's natural key, so replaying a cycle is harmless.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import async_sessionmaker

from trueequity.data.models import (
    FUNDAMENTAL_FIELDS, FundamentalSnapshot, IndicatorSnapshot, Instrument,
    PriceBar, RefreshKind, ScoreSnapshot, Timeframe,
)
from trueequity.db.schema import (
    FundamentalRecord, IndicatorRecord, InstrumentRecord, PriceBarRecord, ScoreRecord,
)
from trueequity.utils.errors import ValidationFailure
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.helpers import as_utc, normalize_symbol
from trueequity.utils.logger import get_logger

logger = get_logger("storage_gateway")

PRICE_COLUMNS = ("open", "high", "low", "close", "adjusted_close", "volume")
SCORE_COLUMNS = (
    "valuation_category", "valuation_score", "health_score", "health_grade",
    "growth_score", "growth_grade", "risk_score", "risk_grade",
    "overall_score", "overall_grade", "pe_score", "peg_score", "debt_score",
    "profitability_score", "growth_rate_score", "volatility_score",
)
# SQLite caps bound parameters per statement
MAX_BOUND_PARAMETERS = 900


def placeholder_name(symbol: str) -> str:
    return f"{symbol} Corp"


class StorageGateway:
    """Reads and idempotent writes against the relational store."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        default_exchange: str = "NASDAQ",
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.default_exchange = default_exchange
        self.clock = clock or SystemClock()
        engine = session_factory.kw.get("bind")
        self.dialect = engine.dialect.name if engine is not None else "sqlite"

    def _insert(self, table):
        if self.dialect == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def dispose(self) -> None:
        engine = self.session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()

    # ─── Instruments ────────────────────────────────────────────

    async def upsert_instrument(self, instrument: Instrument) -> None:
        """Insert or update a profile. Null optional fields never erase stored ones."""
        symbol = normalize_symbol(instrument.symbol or "")
        if not symbol:
            raise ValidationFailure("instrument upsert without symbol")
        if not instrument.name or not instrument.name.strip():
            raise ValidationFailure(f"instrument upsert without name for {symbol}")

        now = self.clock.now()
        values = {
            "symbol": symbol,
            "name": instrument.name.strip(),
            "exchange": instrument.exchange or self.default_exchange,
            "sector": instrument.sector,
            "industry": instrument.industry,
            "market_cap": instrument.market_cap,
            "is_active": True,
            "added_at": now,
            "updated_at": now,
        }
        stmt = self._insert(InstrumentRecord).values(**values)
        updates: Dict[str, Any] = {"name": stmt.excluded.name, "updated_at": stmt.excluded.updated_at}
        for field in ("exchange", "sector", "industry", "market_cap"):
            if getattr(instrument, field) is not None:
                updates[field] = getattr(stmt.excluded, field)
        stmt = stmt.on_conflict_do_update(index_elements=[InstrumentRecord.symbol], set_=updates)

        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def ensure_instrument(self, symbol: str) -> bool:
        """Create a placeholder row when missing. Returns True if one was created."""
        symbol = normalize_symbol(symbol)
        if await self.exists(symbol):
            return False
        stmt = self._insert(InstrumentRecord).values(
            symbol=symbol,
            name=placeholder_name(symbol),
            exchange=self.default_exchange,
            is_active=True,
            added_at=self.clock.now(),
            # A stub is not a fetched profile, so it must not satisfy the profile staleness gate
            updated_at=None,
        ).on_conflict_do_nothing(index_elements=[InstrumentRecord.symbol])
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(stmt)
        logger.info("instrument_stub_created", symbol=symbol)
        return True

    async def exists(self, symbol: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InstrumentRecord.id).where(InstrumentRecord.symbol == normalize_symbol(symbol))
            )
            return result.first() is not None

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        async with self.session_factory() as session:
            record = (
                await session.execute(
                    select(InstrumentRecord).where(InstrumentRecord.symbol == normalize_symbol(symbol))
                )
            ).scalar_one_or_none()
        if record is None:
            return None
        return Instrument(
            symbol=record.symbol,
            name=record.name,
            exchange=record.exchange,
            sector=record.sector,
            industry=record.industry,
            market_cap=record.market_cap,
        )

    async def list_symbols(self, active_only: bool = True) -> List[str]:
        query = select(InstrumentRecord.symbol).order_by(InstrumentRecord.symbol)
        if active_only:
            query = query.where(InstrumentRecord.is_active.is_(True))
        async with self.session_factory() as session:
            return list((await session.execute(query)).scalars())

    async def last_updated(self, symbol: str, kind: RefreshKind) -> Optional[datetime]:
        """When data of this kind last changed for the symbol; None if never."""
        symbol = normalize_symbol(symbol)
        record, column = {
            RefreshKind.PROFILE: (InstrumentRecord, InstrumentRecord.updated_at),
            RefreshKind.PRICES: (PriceBarRecord, PriceBarRecord.updated_at),
            RefreshKind.FUNDAMENTALS: (FundamentalRecord, FundamentalRecord.updated_at),
            RefreshKind.SCORE: (ScoreRecord, ScoreRecord.calculated_at),
        }[kind]
        async with self.session_factory() as session:
            value = (
                await session.execute(select(func.max(column)).where(record.symbol == symbol))
            ).scalar()
        return as_utc(value)

    # ─── Prices ─────────────────────────────────────────────────

    async def batch_upsert_prices(self, bars: Iterable[PriceBar]) -> int:
        """Upsert bars keyed on (symbol, trade date). Returns the number of rows written."""
        rows: Dict[tuple, Dict[str, Any]] = {}
        now = self.clock.now()
        for bar in bars:
            symbol = normalize_symbol(bar.symbol)
            # Later bars for the same day replace earlier ones inside one batch
            rows[(symbol, bar.trade_date)] = {
                "symbol": symbol,
                "date": bar.trade_date,
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "adjusted_close": bar.adjusted_close,
                "volume": bar.volume,
                "updated_at": now,
            }
        records = list(rows.values())
        if not records:
            return 0

        batch_size = max(1, MAX_BOUND_PARAMETERS // len(records[0]))
        table = PriceBarRecord.__table__
        async with self.session_factory() as session:
            async with session.begin():
                for start in range(0, len(records), batch_size):
                    stmt = self._insert(PriceBarRecord).values(records[start:start + batch_size])
                    changed = or_(*[table.c[col].is_distinct_from(stmt.excluded[col]) for col in PRICE_COLUMNS])
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[PriceBarRecord.symbol, PriceBarRecord.date],
                        set_={
                            **{col: stmt.excluded[col] for col in PRICE_COLUMNS},
                            "updated_at": stmt.excluded.updated_at,
                        },
                        # Identical bars leave the stored row untouched
                        where=changed,
                    )
                    await session.execute(stmt)
        return len(records)

    async def latest_price(self, symbol: str) -> Optional[float]:
        async with self.session_factory() as session:
            return (
                await session.execute(
                    select(PriceBarRecord.close)
                    .where(PriceBarRecord.symbol == normalize_symbol(symbol))
                    .order_by(PriceBarRecord.date.desc())
                    .limit(1)
                )
            ).scalar()

    async def latest_price_date(self, symbol: str) -> Optional[date]:
        async with self.session_factory() as session:
            return (
                await session.execute(
                    select(func.max(PriceBarRecord.date)).where(PriceBarRecord.symbol == normalize_symbol(symbol))
                )
            ).scalar()

    async def bars_between(self, symbol: str, start: date, end: date) -> List[PriceBar]:
        """Stored daily bars in [start, end], oldest first."""
        async with self.session_factory() as session:
            records = (
                await session.execute(
                    select(PriceBarRecord)
                    .where(
                        PriceBarRecord.symbol == normalize_symbol(symbol),
                        PriceBarRecord.date >= start,
                        PriceBarRecord.date <= end,
                    )
                    .order_by(PriceBarRecord.date.asc())
                )
            ).scalars().all()
        return [
            PriceBar(
                symbol=r.symbol,
                timestamp=datetime.combine(r.date, time.min, tzinfo=timezone.utc),
                open=r.open,
                high=r.high,
                low=r.low,
                close=r.close,
                adjusted_close=r.adjusted_close,
                volume=r.volume,
            )
            for r in records
        ]

    # ─── Fundamentals ───────────────────────────────────────────

    async def upsert_fundamentals(self, snapshot: FundamentalSnapshot) -> None:
        """Write a snapshot, overwriting every field of an existing period row."""
        if snapshot.period_end_date is None:
            raise ValidationFailure(f"fundamentals upsert without period end for {snapshot.symbol}")
        now = self.clock.now()
        values = {
            "symbol": normalize_symbol(snapshot.symbol),
            "period_type": snapshot.period_type,
            "period_end_date": snapshot.period_end_date,
            **{name: getattr(snapshot, name) for name in FUNDAMENTAL_FIELDS},
            "created_at": now,
            "updated_at": now,
        }
        stmt = self._insert(FundamentalRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                FundamentalRecord.symbol, FundamentalRecord.period_type, FundamentalRecord.period_end_date,
            ],
            set_={
                **{name: stmt.excluded[name] for name in FUNDAMENTAL_FIELDS},
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def latest_fundamentals(self, symbol: str) -> Optional[FundamentalSnapshot]:
        async with self.session_factory() as session:
            record = (
                await session.execute(
                    select(FundamentalRecord)
                    .where(FundamentalRecord.symbol == normalize_symbol(symbol))
                    .order_by(FundamentalRecord.period_end_date.desc(), FundamentalRecord.updated_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        if record is None:
            return None
        return FundamentalSnapshot(
            symbol=record.symbol,
            period_type=record.period_type,
            period_end_date=record.period_end_date,
            **{name: getattr(record, name) for name in FUNDAMENTAL_FIELDS},
        )

    # ─── Scores ─────────────────────────────────────────────────

    async def replace_score(self, score: ScoreSnapshot) -> None:
        """Delete any previous score for the symbol and insert this one, atomically."""
        symbol = normalize_symbol(score.symbol)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(ScoreRecord).where(ScoreRecord.symbol == symbol))
                session.add(
                    ScoreRecord(
                        symbol=symbol,
                        calculated_at=score.calculated_at,
                        **{col: getattr(score, col) for col in SCORE_COLUMNS},
                    )
                )

    async def latest_score(self, symbol: str) -> Optional[ScoreSnapshot]:
        async with self.session_factory() as session:
            record = (
                await session.execute(
                    select(ScoreRecord)
                    .where(ScoreRecord.symbol == normalize_symbol(symbol))
                    .order_by(ScoreRecord.calculated_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        if record is None:
            return None
        return ScoreSnapshot(
            symbol=record.symbol,
            calculated_at=as_utc(record.calculated_at),
            **{col: getattr(record, col) for col in SCORE_COLUMNS},
        )

    # ─── Indicators ─────────────────────────────────────────────

    async def upsert_indicator(self, snapshot: IndicatorSnapshot) -> None:
        stmt = self._insert(IndicatorRecord).values(
            symbol=normalize_symbol(snapshot.symbol),
            date=snapshot.as_of,
            timeframe=snapshot.timeframe.value,
            rsi=snapshot.rsi,
            updated_at=self.clock.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IndicatorRecord.symbol, IndicatorRecord.date, IndicatorRecord.timeframe],
            set_={"rsi": stmt.excluded.rsi, "updated_at": stmt.excluded.updated_at},
        )
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def latest_indicator(
        self, symbol: str, timeframe: Timeframe, on_date: Optional[date] = None
    ) -> Optional[IndicatorSnapshot]:
        """Most recent RSI for a timeframe, or the one stored for ``on_date``."""
        query = select(IndicatorRecord).where(
            IndicatorRecord.symbol == normalize_symbol(symbol),
            IndicatorRecord.timeframe == timeframe.value,
        )
        if on_date is not None:
            query = query.where(IndicatorRecord.date == on_date)
        query = query.order_by(IndicatorRecord.date.desc()).limit(1)
        async with self.session_factory() as session:
            record = (await session.execute(query)).scalar_one_or_none()
        if record is None:
            return None
        return IndicatorSnapshot(
            symbol=record.symbol,
            as_of=record.date,
            timeframe=Timeframe(record.timeframe),
            rsi=record.rsi,
        )

"""
TRUEEQUITY — Ingestion Pipeline
Keeps instruments, prices, fundamentals and scores fresh. Every refresh kind
has its own staleness gate so rate-limited upstreams are not asked twice.
"""
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.models import BarInterval, Instrument, RefreshKind
from trueequity.db.gateway import StorageGateway, placeholder_name
from trueequity.engines.scoring_engine import ScoringEngine
from trueequity.config.settings import IngestionSettings, get_settings
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.helpers import normalize_symbol
from trueequity.utils.logger import get_logger

logger = get_logger("ingestion")


class RefreshResult(str, Enum):
    UPDATED = "updated"
    FRESH = "fresh"          # skipped by the staleness gate
    NO_DATA = "no_data"      # upstream had nothing
    REJECTED = "rejected"    # upstream answered with unusable data


def is_placeholder_name(name: Optional[str], symbol: str) -> bool:
    """Empty or null names and our own stub name are not real company names."""
    if name is None:
        return True
    cleaned = name.strip()
    if not cleaned or cleaned.lower() in ("null", "none"):
        return True
    return cleaned == placeholder_name(symbol)


class IngestionPipeline:
    """Per-symbol refresh operations against one provider and one store."""

    def __init__(
        self,
        provider: BaseDataAdapter,
        gateway: StorageGateway,
        scoring: Optional[ScoringEngine] = None,
        clock: Optional[Clock] = None,
        settings: Optional[IngestionSettings] = None,
    ):
        self.provider = provider
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.scoring = scoring or ScoringEngine(gateway, clock=self.clock)
        self.settings = settings or get_settings().ingestion

    async def _is_fresh(self, symbol: str, kind: RefreshKind, window: timedelta) -> bool:
        last = await self.gateway.last_updated(symbol, kind)
        return last is not None and self.clock.now() - last < window

    async def refresh_profile(self, symbol: str, force: bool = False) -> RefreshResult:
        symbol = normalize_symbol(symbol)
        window = timedelta(days=self.settings.profile_stale_days)
        if not force and await self._is_fresh(symbol, RefreshKind.PROFILE, window):
            logger.debug("profile_fresh", symbol=symbol)
            return RefreshResult.FRESH

        profile = await self.provider.get_profile(symbol)
        if profile is None:
            created = await self.gateway.ensure_instrument(symbol)
            logger.info("profile_unavailable", symbol=symbol, stub_created=created)
            return RefreshResult.NO_DATA

        if is_placeholder_name(profile.name, symbol):
            logger.warning("profile_name_rejected", symbol=symbol, name=profile.name)
            return RefreshResult.REJECTED

        await self.gateway.upsert_instrument(
            Instrument(
                symbol=symbol,
                name=profile.name.strip(),
                exchange=profile.exchange,
                sector=profile.sector,
                industry=profile.industry,
                market_cap=profile.market_cap if profile.market_cap and profile.market_cap > 0 else None,
            )
        )
        logger.info("profile_updated", symbol=symbol, source=self.provider.identity)
        return RefreshResult.UPDATED

    async def refresh_prices(self, symbol: str, start: date, end: date) -> int:
        """Fetch daily bars in [start, end], drop invalid ones, upsert the rest."""
        symbol = normalize_symbol(symbol)
        bars = await self.provider.get_price_series(symbol, start, end, BarInterval.DAILY)
        valid = [bar for bar in bars if bar.is_valid()]
        if len(valid) < len(bars):
            logger.debug("invalid_bars_dropped", symbol=symbol, dropped=len(bars) - len(valid))
        if not valid:
            logger.info("prices_unavailable", symbol=symbol, start=str(start), end=str(end))
            return 0
        await self.gateway.ensure_instrument(symbol)
        written = await self.gateway.batch_upsert_prices(valid)
        logger.info("prices_upserted", symbol=symbol, count=written)
        return written

    async def refresh_latest_price(self, symbol: str) -> int:
        """Price refresh for yesterday and today."""
        today = self.clock.today()
        return await self.refresh_prices(symbol, today - timedelta(days=1), today)

    async def refresh_fundamentals(self, symbol: str, force: bool = False) -> RefreshResult:
        symbol = normalize_symbol(symbol)
        # Parent row first, whether or not the gate lets us through
        await self.gateway.ensure_instrument(symbol)

        window = timedelta(hours=self.settings.fundamentals_stale_hours)
        if not force and await self._is_fresh(symbol, RefreshKind.FUNDAMENTALS, window):
            logger.debug("fundamentals_fresh", symbol=symbol)
            return RefreshResult.FRESH

        snapshot = await self.provider.get_fundamentals(symbol)
        if snapshot is None:
            logger.info("fundamentals_unavailable", symbol=symbol)
            return RefreshResult.NO_DATA

        snapshot = snapshot.model_copy(
            update={
                "symbol": symbol,
                "period_type": snapshot.period_type or "annual",
                "period_end_date": snapshot.period_end_date or self.clock.today(),
            }
        )
        await self.gateway.upsert_fundamentals(snapshot)
        logger.info(
            "fundamentals_updated",
            symbol=symbol,
            period_end=str(snapshot.period_end_date),
            fields=len(snapshot.present_fields()),
        )
        return RefreshResult.UPDATED

    async def _score_is_current(self, symbol: str) -> bool:
        """A score under the staleness window with no newer prices or fundamentals behind it."""
        calculated = await self.gateway.last_updated(symbol, RefreshKind.SCORE)
        if calculated is None:
            return False
        if self.clock.now() - calculated >= timedelta(hours=self.settings.score_stale_hours):
            return False
        for kind in (RefreshKind.FUNDAMENTALS, RefreshKind.PRICES):
            landed = await self.gateway.last_updated(symbol, kind)
            if landed is not None and landed > calculated:
                logger.debug("score_inputs_changed", symbol=symbol, kind=kind.value)
                return False
        return True

    async def refresh_score(self, symbol: str, force: bool = False) -> RefreshResult:
        symbol = normalize_symbol(symbol)
        if not force and await self._score_is_current(symbol):
            logger.debug("score_fresh", symbol=symbol)
            return RefreshResult.FRESH

        score = await self.scoring.score_symbol(symbol)
        if score is None:
            return RefreshResult.NO_DATA
        await self.gateway.replace_score(score)
        logger.info(
            "score_updated",
            symbol=symbol,
            overall=score.overall_score,
            grade=score.overall_grade,
            recommendation=score.recommendation,
        )
        return RefreshResult.UPDATED

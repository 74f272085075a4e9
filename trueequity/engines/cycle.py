"""
TRUEEQUITY — Refresh Cycles
What an external scheduler calls. Symbols run one after another; within a
symbol the steps run in a fixed order, and a failing step never stops the cycle.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from trueequity.engines.indicator_engine import IndicatorEngine
from trueequity.engines.ingestion import IngestionPipeline
from trueequity.config.settings import AppSettings, get_settings
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.helpers import normalize_symbol
from trueequity.utils.logger import get_logger

logger = get_logger("cycle")

Step = Tuple[str, Callable[[], Awaitable[Any]]]


@dataclass
class CycleReport:
    """Outcome of one pass over the symbol list."""
    name: str
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, List[str]] = field(default_factory=dict)
    skipped: bool = False

    def record_failure(self, symbol: str, step: str) -> None:
        self.failed.setdefault(symbol, []).append(step)

    def to_dict(self) -> Dict:
        return {
            "cycle": self.name,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "failed_steps": self.failed,
            "skipped": self.skipped,
        }


def is_market_open(moment: datetime, settings: Optional[AppSettings] = None) -> bool:
    """Weekday regular session in the market's own timezone."""
    settings = settings or get_settings()
    local = moment.astimezone(ZoneInfo(settings.market_timezone))
    if local.weekday() >= 5:
        return False
    opens = time(settings.market_open_hour, settings.market_open_minute)
    closes = time(settings.market_close_hour, 0)
    return opens <= local.time() < closes


class PipelineRunner:
    """Runs ingestion and indicator steps per symbol, isolating failures."""

    def __init__(
        self,
        ingestion: IngestionPipeline,
        indicators: IndicatorEngine,
        clock: Optional[Clock] = None,
        settings: Optional[AppSettings] = None,
    ):
        self.ingestion = ingestion
        self.indicators = indicators
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def _pause(self) -> None:
        pause = self.settings.ingestion.step_pause_seconds
        if pause > 0:
            await asyncio.sleep(pause)

    async def _run_steps(self, report: CycleReport, symbol: str, steps: List[Step]) -> None:
        ok = True
        for step_name, step in steps:
            try:
                await step()
            except Exception as e:
                ok = False
                report.record_failure(symbol, step_name)
                logger.error("refresh_step_failed", cycle=report.name, symbol=symbol, step=step_name, error=str(e))
            await self._pause()
        if ok:
            report.succeeded.append(symbol)

    async def _run(
        self,
        name: str,
        symbols: Iterable[str],
        plan: Callable[[str], List[Step]],
    ) -> CycleReport:
        report = CycleReport(name=name)
        symbols = [normalize_symbol(s) for s in symbols]
        logger.info("cycle_started", cycle=name, symbols=len(symbols))
        for symbol in symbols:
            await self._run_steps(report, symbol, plan(symbol))
        logger.info("cycle_completed", **report.to_dict())
        return report

    async def bootstrap(self, symbols: Iterable[str]) -> CycleReport:
        """First-run load: every gate forced open."""
        today = self.clock.today()
        start = today - timedelta(days=self.settings.ingestion.bootstrap_price_days)

        def plan(symbol: str) -> List[Step]:
            return [
                ("profile", lambda: self.ingestion.refresh_profile(symbol, force=True)),
                ("prices", lambda: self.ingestion.refresh_prices(symbol, start, today)),
                ("indicators", lambda: self.indicators.refresh_all(symbol)),
                ("fundamentals", lambda: self.ingestion.refresh_fundamentals(symbol, force=True)),
                ("score", lambda: self.ingestion.refresh_score(symbol, force=True)),
            ]

        return await self._run("bootstrap", symbols, plan)

    async def price_cycle(self, symbols: Iterable[str], force: bool = False) -> CycleReport:
        """Intraday pass: latest price, RSI, then gated fundamentals."""
        if not force and not is_market_open(self.clock.now(), self.settings):
            logger.info("market_closed_skip", cycle="prices")
            return CycleReport(name="prices", skipped=True)

        def plan(symbol: str) -> List[Step]:
            return [
                ("latest_price", lambda: self.ingestion.refresh_latest_price(symbol)),
                ("indicators", lambda: self.indicators.refresh_all(symbol)),
                ("fundamentals", lambda: self.ingestion.refresh_fundamentals(symbol)),
            ]

        return await self._run("prices", symbols, plan)

    async def score_cycle(self, symbols: Iterable[str], force: bool = False) -> CycleReport:
        def plan(symbol: str) -> List[Step]:
            return [("score", lambda: self.ingestion.refresh_score(symbol, force=force))]

        return await self._run("scores", symbols, plan)

    async def indicator_cycle(self, symbols: Iterable[str]) -> CycleReport:
        def plan(symbol: str) -> List[Step]:
            return [("indicators", lambda: self.indicators.refresh_all(symbol))]

        return await self._run("indicators", symbols, plan)

"""
TRUEEQUITY — Main Entry Point
Runs one ingestion cycle per invocation; an external scheduler decides when.
"""
import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from trueequity.config.settings import get_settings
from trueequity.data.adapters.base import BaseDataAdapter
from trueequity.data.cache.price_cache import get_cache
from trueequity.data.composite import build_provider
from trueequity.db.gateway import StorageGateway
from trueequity.db.schema import init_db
from trueequity.engines.cycle import PipelineRunner
from trueequity.engines.indicator_engine import IndicatorEngine
from trueequity.engines.ingestion import IngestionPipeline
from trueequity.engines.scoring_engine import ScoringEngine
from trueequity.data.models import Timeframe
from trueequity.utils.clock import SystemClock
from trueequity.utils.helpers import format_market_cap
from trueequity.utils.logger import setup_logging, get_logger

logger = get_logger("main")


@dataclass
class Runtime:
    provider: BaseDataAdapter
    gateway: StorageGateway
    runner: PipelineRunner


@asynccontextmanager
async def open_runtime() -> AsyncIterator[Runtime]:
    """Wire provider, store and engines; tear them down on exit."""
    settings = get_settings()
    clock = SystemClock()
    session_factory = await init_db(settings.database.db_url, echo=settings.database.echo_sql)
    gateway = StorageGateway(session_factory, settings.ingestion.default_exchange, clock=clock)
    provider = build_provider(settings, clock=clock)
    await provider.connect()

    scoring = ScoringEngine(gateway, clock=clock)
    ingestion = IngestionPipeline(provider, gateway, scoring=scoring, clock=clock)
    indicators = IndicatorEngine(provider, gateway, clock=clock)
    runner = PipelineRunner(ingestion, indicators, clock=clock)
    try:
        yield Runtime(provider=provider, gateway=gateway, runner=runner)
    finally:
        await provider.disconnect()
        await gateway.dispose()


async def show(runtime: Runtime, symbol: str) -> dict:
    instrument = await runtime.gateway.get_instrument(symbol)
    score = await runtime.gateway.latest_score(symbol)
    price_date = await runtime.gateway.latest_price_date(symbol)
    rsi = {}
    for tf in Timeframe:
        snapshot = await runtime.gateway.latest_indicator(symbol, tf)
        rsi[tf.value] = snapshot.rsi if snapshot else None
    return {
        "symbol": symbol.upper(),
        "name": instrument.name if instrument else None,
        "exchange": instrument.exchange if instrument else None,
        "sector": instrument.sector if instrument else None,
        "market_cap": format_market_cap(instrument.market_cap) if instrument else None,
        "latest_price": await runtime.gateway.latest_price(symbol),
        "price_date": price_date.isoformat() if price_date else None,
        "score": score.model_dump(mode="json") if score else None,
        "recommendation": score.recommendation if score else None,
        "rsi": rsi,
    }


async def run(command: str, symbols: Optional[List[str]], force: bool) -> int:
    async with open_runtime() as runtime:
        if command == "show":
            # Without --symbols, show everything already stored
            for symbol in symbols or await runtime.gateway.list_symbols():
                print(json.dumps(await show(runtime, symbol), indent=2))
            return 0
        if command == "health":
            healthy = await runtime.provider.health_check()
            print(json.dumps({"provider": runtime.provider.identity, "healthy": healthy, "cache": get_cache().stats}))
            return 0 if healthy else 1

        symbols = symbols or get_settings().symbols
        runner = runtime.runner
        if command == "bootstrap":
            report = await runner.bootstrap(symbols)
        elif command == "prices":
            report = await runner.price_cycle(symbols, force=force)
        elif command == "scores":
            report = await runner.score_cycle(symbols, force=force)
        else:
            report = await runner.indicator_cycle(symbols)
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if not report.failed else 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TrueEquity ingestion and scoring pipeline")
    parser.add_argument(
        "command",
        choices=["bootstrap", "prices", "scores", "indicators", "show", "health"],
        help="Cycle to run, or 'show' to print stored results",
    )
    parser.add_argument(
        "--symbols",
        nargs="+",
        default=None,
        help="Symbols to process (default: SYMBOLS from settings; for show, every stored symbol)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore market hours and staleness windows where the cycle allows it",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging()
    logger.info("starting_trueequity", version=settings.version, command=args.command, symbols=args.symbols or "default")
    return asyncio.run(run(args.command, args.symbols, args.force))


if __name__ == "__main__":
    sys.exit(main())

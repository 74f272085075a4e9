"""
TRUEEQUITY — Scoring Engine
Deterministic valuation, health, growth and risk scores from the latest
fundamentals, combined into an overall 0-100 score with letter grades.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from trueequity.data.models import FundamentalSnapshot, ScoreSnapshot
from trueequity.db.gateway import StorageGateway
from trueequity.config.settings import get_settings
from trueequity.utils.clock import Clock, SystemClock
from trueequity.utils.helpers import clamp, letter_grade
from trueequity.utils.logger import get_logger

logger = get_logger("scoring_engine")

NEUTRAL = 50.0

# (upper bound exclusive, points); the last entry is the fallback
PE_BUCKETS: List[Tuple[float, float]] = [(10, 100), (15, 90), (20, 75), (30, 55), (40, 35), (float("inf"), 20)]
PEG_BUCKETS: List[Tuple[float, float]] = [(1, 100), (2, 80), (3, 60), (float("inf"), 40)]
PB_BUCKETS: List[Tuple[float, float]] = [(1, 100), (2, 80), (3, 60), (float("inf"), 40)]
DEBT_SCORE_BUCKETS: List[Tuple[float, float]] = [(0.3, 100), (0.6, 70), (1.0, 40), (float("inf"), 20)]
HEALTH_DEBT_BUCKETS: List[Tuple[float, float]] = [(0.5, 50), (1.0, 30), (2.0, 15), (float("inf"), 5)]

VALUATION_WEIGHTS = {"pe": 0.4, "peg": 0.4, "pb": 0.2}
OVERALL_WEIGHTS = {"valuation": 0.25, "health": 0.30, "growth": 0.30, "inverse_risk": 0.15}


def _bucket(value: float, buckets: List[Tuple[float, float]]) -> float:
    for upper, points in buckets:
        if value < upper:
            return float(points)
    return float(buckets[-1][1])


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


def pe_score(pe: Optional[float]) -> float:
    """P/E sub-score; a missing or non-positive P/E is neutral."""
    return _bucket(pe, PE_BUCKETS) if _positive(pe) else NEUTRAL


def peg_score(peg: Optional[float]) -> float:
    return _bucket(peg, PEG_BUCKETS) if _positive(peg) else NEUTRAL


def price_to_book_score(pb: Optional[float]) -> float:
    return _bucket(pb, PB_BUCKETS) if _positive(pb) else NEUTRAL


def valuation_score(
    pe: Optional[float], peg: Optional[float], pb: Optional[float], renormalize: bool = False
) -> float:
    """
    Weighted P/E (40%), PEG (40%) and P/B (20%) sub-scores over the ratios that
    are present and positive. With ``renormalize`` off the weights are not
    rescaled, so P/E alone tops out at 40.
    """
    parts = []
    if _positive(pe):
        parts.append((VALUATION_WEIGHTS["pe"], pe_score(pe)))
    if _positive(peg):
        parts.append((VALUATION_WEIGHTS["peg"], peg_score(peg)))
    if _positive(pb):
        parts.append((VALUATION_WEIGHTS["pb"], price_to_book_score(pb)))
    if not parts:
        return NEUTRAL
    total = sum(weight * points for weight, points in parts)
    if renormalize:
        total = total / sum(weight for weight, _ in parts)
    return min(100.0, total)


def valuation_category(pe: Optional[float], peg: Optional[float]) -> str:
    """cheap / fair / expensive from PEG when usable, else from P/E."""
    if _positive(peg):
        if peg < 1:
            return "cheap"
        if peg < 2:
            return "fair"
        return "expensive"
    if pe is None:
        return "N/A"
    if pe < 15:
        return "cheap"
    if pe < 25:
        return "fair"
    return "expensive"


def health_score(debt_to_equity: Optional[float], current_ratio: Optional[float]) -> float:
    if debt_to_equity is None and current_ratio is None:
        return NEUTRAL
    score = 0.0
    if debt_to_equity is not None:
        score += _bucket(debt_to_equity, HEALTH_DEBT_BUCKETS)
    if current_ratio is not None:
        if current_ratio >= 2.0:
            score += 50
        elif current_ratio >= 1.5:
            score += 30
        elif current_ratio >= 1.0:
            score += 15
        else:
            score += 5
    return min(100.0, score)


def _growth_points(growth_pct: float) -> float:
    if growth_pct > 20:
        return 50.0
    elif growth_pct > 15:
        return 40.0
    elif growth_pct > 10:
        return 30.0
    elif growth_pct > 5:
        return 20.0
    return 10.0


def growth_score(revenue_growth_yoy: Optional[float], eps_growth_yoy: Optional[float]) -> float:
    """Revenue and EPS growth buckets, 0-50 points each. Only positive growth is counted."""
    present = [g for g in (revenue_growth_yoy, eps_growth_yoy) if _positive(g)]
    if not present:
        return NEUTRAL
    return min(100.0, sum(_growth_points(g) for g in present))


def risk_score(debt_to_equity: Optional[float], current_ratio: Optional[float]) -> float:
    """Higher is riskier: leverage bucket plus a flat penalty for current ratio below 1."""
    if debt_to_equity is None and current_ratio is None:
        return NEUTRAL
    score = 0.0
    if debt_to_equity is not None:
        if debt_to_equity > 1.0:
            score += 50
        elif debt_to_equity > 0.6:
            score += 30
        else:
            score += 10
    if current_ratio is not None and current_ratio < 1.0:
        score += 30
    return min(100.0, score)


def debt_score(debt_to_equity: Optional[float]) -> float:
    return _bucket(debt_to_equity, DEBT_SCORE_BUCKETS) if debt_to_equity is not None else NEUTRAL


def profitability_score(roe: Optional[float], roic: Optional[float]) -> float:
    if roe is None and roic is None:
        return NEUTRAL
    score = 0.0
    if _positive(roe):
        if roe > 20:
            score += 50
        elif roe > 15:
            score += 40
        elif roe > 10:
            score += 25
    if _positive(roic):
        if roic > 15:
            score += 50
        elif roic > 10:
            score += 40
        elif roic > 5:
            score += 25
    return min(100.0, score)


def overall_score(valuation: float, health: float, growth: float, risk: float) -> float:
    """0.25 valuation + 0.30 health + 0.30 growth + 0.15 (100 - risk), half-up to 2 places."""
    weighted = (
        Decimal(str(valuation)) * Decimal("0.25")
        + Decimal(str(health)) * Decimal("0.30")
        + Decimal(str(growth)) * Decimal("0.30")
        + (Decimal(100) - Decimal(str(risk))) * Decimal("0.15")
    )
    rounded = weighted.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return clamp(float(rounded), 0.0, 100.0)


@dataclass
class ScoreInputs:
    """What a score was computed from; kept for logging."""
    has_fundamentals: bool
    has_price: bool

    @property
    def missing(self) -> List[str]:
        out = []
        if not self.has_fundamentals:
            out.append("fundamentals")
        if not self.has_price:
            out.append("price")
        return out


def calculate_score(
    fundamentals: Optional[FundamentalSnapshot],
    latest_price: Optional[float],
    calculated_at: datetime,
    renormalize_valuation: bool = False,
) -> Optional[ScoreSnapshot]:
    """Pure scoring; None when fundamentals or a price are unavailable."""
    if fundamentals is None or latest_price is None:
        return None
    f = fundamentals

    valuation = valuation_score(f.pe_ratio, f.peg_ratio, f.price_to_book, renormalize_valuation)
    health = health_score(f.debt_to_equity, f.current_ratio)
    growth = growth_score(f.revenue_growth_yoy, f.eps_growth_yoy)
    risk = risk_score(f.debt_to_equity, f.current_ratio)
    overall = overall_score(valuation, health, growth, risk)

    return ScoreSnapshot(
        symbol=f.symbol,
        calculated_at=calculated_at,
        valuation_category=valuation_category(f.pe_ratio, f.peg_ratio),
        valuation_score=valuation,
        health_score=health,
        health_grade=letter_grade(health),
        growth_score=growth,
        growth_grade=letter_grade(growth),
        risk_score=risk,
        risk_grade=letter_grade(risk),
        overall_score=overall,
        overall_grade=letter_grade(overall),
        pe_score=pe_score(f.pe_ratio),
        peg_score=peg_score(f.peg_ratio),
        debt_score=debt_score(f.debt_to_equity),
        profitability_score=profitability_score(f.roe, f.roic),
        growth_rate_score=growth,
        # TODO: derive from the stored daily close series once a volatility measure is agreed
        volatility_score=0.0,
    )


class ScoringEngine:
    """Reads the latest persisted inputs for a symbol and scores them."""

    def __init__(self, gateway: StorageGateway, clock: Optional[Clock] = None, renormalize_valuation: Optional[bool] = None):
        self.gateway = gateway
        self.clock = clock or SystemClock()
        if renormalize_valuation is None:
            renormalize_valuation = get_settings().scoring.renormalize_valuation
        self.renormalize_valuation = renormalize_valuation

    async def score_symbol(self, symbol: str) -> Optional[ScoreSnapshot]:
        fundamentals = await self.gateway.latest_fundamentals(symbol)
        price = await self.gateway.latest_price(symbol)
        score = calculate_score(fundamentals, price, self.clock.now(), self.renormalize_valuation)
        if score is None:
            inputs = ScoreInputs(has_fundamentals=fundamentals is not None, has_price=price is not None)
            logger.info("score_inputs_missing", symbol=symbol, missing=inputs.missing)
        return score

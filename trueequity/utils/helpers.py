"""
TRUEEQUITY — Common Utility Functions
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def safe_divide(numerator: float, denominator: float, default: Optional[float] = None) -> Optional[float]:
    """Safe division avoiding ZeroDivisionError."""
    if numerator is None or denominator is None or denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, min_val: float = 0.0, max_val: float = 100.0) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a cash register: 0.125 -> 0.13."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def letter_grade(score: Optional[float]) -> str:
    """Map a 0-100 score to a letter grade."""
    if score is None:
        return "N/A"
    if score >= 90:
        return "A"
    elif score >= 80:
        return "B"
    elif score >= 70:
        return "C"
    elif score >= 60:
        return "D"
    else:
        return "F"


def normalize_symbol(symbol: str) -> str:
    """Normalize ticker format: ' aapl ' -> 'AAPL'."""
    return symbol.strip().upper()


def blank_to_none(text: Any) -> Optional[str]:
    """Upstream payloads spell absence as '', 'null', 'None' or '-'."""
    if text is None:
        return None
    value = str(text).strip()
    if not value or value.lower() in ("null", "none", "-"):
        return None
    return value


def to_float(raw: Any) -> Optional[float]:
    """Parse a numeric field that may be missing or spelled as a placeholder."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    text = blank_to_none(raw)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def positive_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return value


def format_market_cap(market_cap: Optional[float]) -> str:
    """Human readable market cap: 2.5e12 -> '2.50T'."""
    if market_cap is None:
        return "N/A"
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if market_cap >= threshold:
            return f"{market_cap / threshold:.2f}{suffix}"
    return f"{market_cap:.0f}"

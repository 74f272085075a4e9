"""
TRUEEQUITY — Momentum Indicators
RSI with Wilder smoothing seeded by a simple average.
"""
from typing import Optional, Sequence
import pandas as pd
import numpy as np

from trueequity.indicators.base import BaseIndicator
from trueequity.utils.helpers import round_half_up


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def wilder_rsi(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """
    RSI for every position of ``closes``; NaN until ``period`` deltas exist.

    The first average gain/loss is the mean of the first ``period`` deltas,
    after which each new delta is folded in as avg = (avg * (period - 1) + x) / period.
    A zero delta counts as neither gain nor loss.
    """
    values = np.asarray(closes, dtype=float)
    out = np.full(len(values), np.nan)
    if len(values) < period + 1:
        return out

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_from_averages(avg_gain, avg_loss)
    return out


class RSIIndicator(BaseIndicator):
    """Relative Strength Index, a momentum oscillator bounded to [0, 100]."""

    def __init__(self, period: int = 14):
        self.period = period
        super().__init__(name="rsi", params={"period": period})

    @property
    def min_points(self) -> int:
        return self.period + 1

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        df = data.copy()
        df["rsi"] = wilder_rsi(df["close"].to_numpy(dtype=float), self.period)
        return df

    def latest(self, data: pd.DataFrame) -> Optional[float]:
        """Most recent RSI of the frame, rounded; None when the frame is too short."""
        if data is None or len(data) < self.min_points:
            return None
        return round_half_up(float(self.calculate(data)["rsi"].iloc[-1]), 2)

"""
TRUEEQUITY — Base Indicator Interface
Indicators take an OHLCV frame and return it with their columns added.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import pandas as pd


class BaseIndicator(ABC):
    """Abstract base class for technical indicators."""

    def __init__(self, name: str, params: Optional[Dict[str, Any]] = None):
        self.name = name
        self.params = params or {}

    @abstractmethod
    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate indicator values and add columns to a copy of the DataFrame.
        The input has at least a ``close`` column, ordered oldest first.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, params={self.params})"

"""
TRUEEQUITY — Provider Contract
Every upstream data source implements this interface. Ordinary "no data"
outcomes come back as None or an empty list, never as an exception.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List
from trueequity.data.models import (
    BarInterval, DataSource, FundamentalSnapshot, Instrument, PriceBar,
)
import pandas as pd


class BaseDataAdapter(ABC):
    """Abstract base class for all market data providers."""

    def __init__(self, source: DataSource):
        self.source = source
        self._session = None

    @property
    def identity(self) -> str:
        return self.source.value

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection / session."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Clean up connection / session."""
        pass

    @abstractmethod
    async def get_profile(self, symbol: str) -> Optional[Instrument]:
        """Fetch the company profile; may be partial."""
        pass

    @abstractmethod
    async def get_price_series(
        self, symbol: str, start: date, end: date, interval: BarInterval = BarInterval.DAILY
    ) -> List[PriceBar]:
        """Fetch bars between start and end inclusive, ascending by time."""
        pass

    @abstractmethod
    async def get_latest_price(self, symbol: str) -> Optional[float]:
        """Fetch the most recent traded price."""
        pass

    @abstractmethod
    async def get_fundamentals(self, symbol: str) -> Optional[FundamentalSnapshot]:
        """Fetch the latest financial profile."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the source is usable right now."""
        pass

    def bars_to_dataframe(self, bars: List[PriceBar]) -> pd.DataFrame:
        """Convert a list of bars to a pandas DataFrame indexed by timestamp."""
        if not bars:
            return pd.DataFrame(columns=["open", "high", "low", "close", "volume", "timestamp"])
        data = [
            {
                "open": b.open,
                "high": b.high,
                "low": b.low,
                "close": b.close,
                "volume": b.volume,
                "timestamp": b.timestamp,
            }
            for b in bars
        ]
        df = pd.DataFrame(data)
        df.set_index("timestamp", inplace=True)
        df.sort_index(inplace=True)
        return df

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source={self.identity})"

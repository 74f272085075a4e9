"""
TRUEEQUITY — Price Cache Layer
In-memory TTL cache so repeated reads within one cycle skip the network.
"""
from typing import Optional, Dict, Any, List, Tuple
from datetime import date
from cachetools import TTLCache

from trueequity.data.models import PriceBar, BarInterval
from trueequity.config.settings import get_settings
from trueequity.utils.logger import get_logger

logger = get_logger("price_cache")

SeriesKey = Tuple[str, str, date, date]


class PriceCache:
    """Per-process cache for bar series and latest prices with TTL expiration."""

    def __init__(self, ttl: Optional[int] = None):
        ttl = ttl if ttl is not None else get_settings().data.cache_ttl_seconds
        # Latest prices go stale fastest
        self._price_cache: TTLCache = TTLCache(maxsize=500, ttl=ttl)
        # Bar series keyed by symbol, interval and window
        self._series_cache: TTLCache = TTLCache(maxsize=200, ttl=ttl * 4)

    @staticmethod
    def _series_key(symbol: str, interval: BarInterval, start: date, end: date) -> SeriesKey:
        return (symbol, interval.value, start, end)

    def put_latest_price(self, symbol: str, price: float) -> None:
        self._price_cache[symbol] = price

    def get_latest_price(self, symbol: str) -> Optional[float]:
        return self._price_cache.get(symbol)

    def put_series(
        self, symbol: str, interval: BarInterval, start: date, end: date, bars: List[PriceBar]
    ) -> None:
        """Cache a fetched bar series. Empty results are not cached."""
        if not bars:
            return
        self._series_cache[self._series_key(symbol, interval, start, end)] = bars

    def get_series(
        self, symbol: str, interval: BarInterval, start: date, end: date
    ) -> Optional[List[PriceBar]]:
        return self._series_cache.get(self._series_key(symbol, interval, start, end))

    def clear(self) -> None:
        """Clear all caches."""
        self._price_cache.clear()
        self._series_cache.clear()
        logger.info("cache_cleared")

    @property
    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        return {
            "price_entries": len(self._price_cache),
            "series_entries": len(self._series_cache),
        }


# Singleton instance
_cache: Optional[PriceCache] = None


def get_cache() -> PriceCache:
    global _cache
    if _cache is None:
        _cache = PriceCache()
    return _cache

"""
行情内存缓存

按标的缓存、带有效期；由数据加载方持有并注入，不使用全局状态。
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

import pandas as pd

from strategylab.settings import get_setting
from .loader import PriceSeriesProvider

logger = logging.getLogger(__name__)


class PriceCache:
    """按标的缓存行情 DataFrame"""

    def __init__(self, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_setting("cache_ttl_seconds")
        self._clock = clock
        self._entries: Dict[str, Tuple[float, pd.DataFrame]] = {}

    def get(self, symbol: str) -> Optional[pd.DataFrame]:
        """命中且未过期时返回副本，否则返回 None"""
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        stored_at, df = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[symbol]
            return None
        return df.copy()

    def put(self, symbol: str, df: pd.DataFrame):
        self._entries[symbol] = (self._clock(), df.copy())

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CachedPriceProvider:
    """为任意行情提供者加一层缓存"""

    def __init__(self, provider: PriceSeriesProvider, cache: Optional[PriceCache] = None):
        self.provider = provider
        self.cache = cache if cache is not None else PriceCache()

    def get_prices(self, symbol: str) -> pd.DataFrame:
        df = self.cache.get(symbol)
        if df is not None:
            logger.debug(f"行情缓存命中: {symbol}")
            return df
        df = self.provider.get_prices(symbol)
        self.cache.put(symbol, df)
        return df

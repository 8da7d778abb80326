"""行情数据加载、缓存和存储模块"""

from .loader import (
    PriceSeriesProvider,
    JsonPriceLoader,
    bars_from_frame,
    frame_from_bars,
    filter_by_date_range,
    summarize_prices,
)
from .cache import PriceCache, CachedPriceProvider
from .local_db import LocalDB

__all__ = [
    "PriceSeriesProvider",
    "JsonPriceLoader",
    "bars_from_frame",
    "frame_from_bars",
    "filter_by_date_range",
    "summarize_prices",
    "PriceCache",
    "CachedPriceProvider",
    "LocalDB",
]

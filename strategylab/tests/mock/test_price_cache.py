"""
Layer 2 Mock 测试 - 行情缓存
用可控时钟和 mock 数据源测试命中与过期
"""

from unittest.mock import MagicMock

import pandas as pd
import pytest

from strategylab.data.cache import CachedPriceProvider, PriceCache


@pytest.fixture
def prices_df():
    return pd.DataFrame({"date": ["2024-01-02", "2024-01-03"], "close": [10.0, 11.0]})


@pytest.fixture
def clock():
    return MagicMock(return_value=1000.0)


@pytest.fixture
def provider(prices_df):
    mock = MagicMock()
    mock.get_prices.return_value = prices_df
    return mock


class TestPriceCache:
    """测试缓存本身"""

    def test_miss(self, clock):
        assert PriceCache(ttl_seconds=300, clock=clock).get("AAPL") is None

    def test_hit_returns_copy(self, clock, prices_df):
        cache = PriceCache(ttl_seconds=300, clock=clock)
        cache.put("AAPL", prices_df)
        cached = cache.get("AAPL")
        cached.loc[0, "close"] = -1.0
        assert cache.get("AAPL").loc[0, "close"] == 10.0

    def test_expires_after_ttl(self, clock, prices_df):
        cache = PriceCache(ttl_seconds=300, clock=clock)
        cache.put("AAPL", prices_df)
        clock.return_value = 1299.0
        assert cache.get("AAPL") is not None
        clock.return_value = 1300.0
        assert cache.get("AAPL") is None
        assert len(cache) == 0

    def test_clear(self, clock, prices_df):
        cache = PriceCache(ttl_seconds=300, clock=clock)
        cache.put("AAPL", prices_df)
        cache.put("MSFT", prices_df)
        assert len(cache) == 2
        cache.clear()
        assert len(cache) == 0

    def test_default_ttl_from_settings(self, monkeypatch):
        monkeypatch.setenv("STRATEGYLAB_CACHE_TTL_SECONDS", "60")
        assert PriceCache().ttl_seconds == 60


class TestCachedPriceProvider:
    """测试带缓存的数据源"""

    def test_second_call_hits_cache(self, provider, clock):
        cached = CachedPriceProvider(provider, PriceCache(ttl_seconds=300, clock=clock))
        cached.get_prices("AAPL")
        cached.get_prices("AAPL")
        provider.get_prices.assert_called_once_with("AAPL")

    def test_symbols_cached_separately(self, provider, clock):
        cached = CachedPriceProvider(provider, PriceCache(ttl_seconds=300, clock=clock))
        cached.get_prices("AAPL")
        cached.get_prices("MSFT")
        assert provider.get_prices.call_count == 2

    def test_refetch_after_expiry(self, provider, clock):
        cached = CachedPriceProvider(provider, PriceCache(ttl_seconds=300, clock=clock))
        cached.get_prices("AAPL")
        clock.return_value = 2000.0
        cached.get_prices("AAPL")
        assert provider.get_prices.call_count == 2

    def test_empty_cache_is_used(self, provider, clock):
        cache = PriceCache(ttl_seconds=300, clock=clock)
        cached = CachedPriceProvider(provider, cache)
        assert cached.cache is cache

    def test_provider_error_not_cached(self, provider, clock, prices_df):
        provider.get_prices.side_effect = [RuntimeError("disk"), prices_df]
        cached = CachedPriceProvider(provider, PriceCache(ttl_seconds=300, clock=clock))
        with pytest.raises(RuntimeError):
            cached.get_prices("AAPL")
        assert len(cached.cache) == 0
        assert cached.get_prices("AAPL") is prices_df
        assert provider.get_prices.call_count == 2

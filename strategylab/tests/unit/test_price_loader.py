"""
Layer 1 单元测试 - 行情加载与转换
"""

import json

import pandas as pd
import pytest

from strategylab.data.loader import (
    JsonPriceLoader,
    bars_from_frame,
    filter_by_date_range,
    normalize_frame,
    summarize_prices,
    symbol_filename,
)
from strategylab.errors import NoDataError

PRICES = [
    {"date": "2024-01-02", "open": 100, "high": 102, "low": 99, "close": 101, "volume": 1000, "adjClose": 100.5},
    {"date": "2024-01-03", "open": 101, "high": 104, "low": 100, "close": 103, "volume": 1500, "adjClose": 102.5},
    {"date": "2024-01-04", "open": 103, "high": 105, "low": 98, "close": 99, "volume": 2000, "adjClose": 98.5},
]


@pytest.fixture
def data_dir(tmp_path):
    payload = {"info": {"symbol": "^GSPC", "name": "S&P 500"}, "prices": PRICES}
    (tmp_path / "_GSPC.json").write_text(json.dumps(payload), encoding="utf-8")
    (tmp_path / "EMPTY.json").write_text(json.dumps({"info": {}, "prices": []}), encoding="utf-8")
    return tmp_path


class TestSymbolFilename:

    def test_index_symbol(self):
        assert symbol_filename("^GSPC") == "_GSPC.json"

    def test_exchange_suffix(self):
        assert symbol_filename("005930.KS") == "005930_KS.json"

    def test_plain(self):
        assert symbol_filename("AAPL") == "AAPL.json"


class TestJsonPriceLoader:

    def test_get_prices(self, data_dir):
        df = JsonPriceLoader(str(data_dir)).get_prices("^GSPC")
        assert list(df["date"]) == ["2024-01-02", "2024-01-03", "2024-01-04"]
        assert "adj_close" in df.columns
        assert df.iloc[1]["close"] == 103

    def test_load_keeps_info(self, data_dir):
        payload = JsonPriceLoader(str(data_dir)).load("^GSPC")
        assert payload["info"]["name"] == "S&P 500"

    def test_missing_file(self, data_dir):
        with pytest.raises(NoDataError):
            JsonPriceLoader(str(data_dir)).get_prices("MSFT")

    def test_empty_prices(self, data_dir):
        with pytest.raises(NoDataError):
            JsonPriceLoader(str(data_dir)).get_prices("EMPTY")


class TestNormalizeFrame:

    def test_duplicate_dates_keep_last(self):
        df = pd.DataFrame({
            "date": ["2024-01-03", "2024-01-02", "2024-01-03"],
            "close": [1.0, 2.0, 3.0],
        })
        out = normalize_frame(df)
        assert list(out["date"]) == ["2024-01-02", "2024-01-03"]
        assert list(out["close"]) == [2.0, 3.0]

    def test_datetime_strings_truncated(self):
        df = pd.DataFrame({"date": ["2024-01-02T00:00:00"], "close": [1.0]})
        assert normalize_frame(df).iloc[0]["date"] == "2024-01-02"

    def test_requires_close(self):
        with pytest.raises(ValueError):
            normalize_frame(pd.DataFrame({"date": ["2024-01-02"], "open": [1.0]}))

    def test_empty(self):
        assert normalize_frame(pd.DataFrame()).empty


class TestBars:

    def test_bars_from_frame(self):
        bars = bars_from_frame(pd.DataFrame(PRICES))
        assert len(bars) == 3
        assert bars[0].close == 101.0
        assert bars[0].adj_close == 100.5

    def test_missing_adj_close_is_none(self):
        bars = bars_from_frame(pd.DataFrame({"date": ["2024-01-02"], "close": [1.0]}))
        assert bars[0].adj_close is None
        assert bars[0].volume == 0.0

    def test_filter_by_date_range_inclusive(self):
        bars = bars_from_frame(pd.DataFrame(PRICES))
        selected = filter_by_date_range(bars, "2024-01-03", "2024-01-04")
        assert [b.date for b in selected] == ["2024-01-03", "2024-01-04"]


class TestSummarizePrices:

    def test_summary(self):
        summary = summarize_prices(pd.DataFrame(PRICES), "^GSPC")
        assert summary["symbol"] == "^GSPC"
        assert summary["start_date"] == "2024-01-02"
        assert summary["end_date"] == "2024-01-04"
        assert summary["total_return_pct"] == pytest.approx((99 - 101) / 101 * 100)
        assert summary["high"] == 105
        assert summary["low"] == 98
        assert summary["avg_volume"] == pytest.approx(1500)
        assert summary["data_points"] == 3
        assert summary["volatility"] > 0

    def test_empty(self):
        assert summarize_prices(pd.DataFrame()) is None

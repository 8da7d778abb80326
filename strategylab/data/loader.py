"""
行情数据加载

- JSON 文件行情（{"info": {...}, "prices": [{date, open, high, low, close, volume, adjClose}]}）
- DataFrame <-> Bar 转换、日期区间过滤、行情摘要
"""

import json
import logging
import math
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np
import pandas as pd

from strategylab.backtest.models import Bar
from strategylab.errors import NoDataError

logger = logging.getLogger(__name__)

PRICE_COLUMNS = ["date", "open", "high", "low", "close", "volume", "adj_close"]


class PriceSeriesProvider(Protocol):
    """行情提供者：返回按日期升序的日线 DataFrame"""

    def get_prices(self, symbol: str) -> pd.DataFrame:
        ...


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """统一列名、排序并去除重复日期（保留最后一条）"""
    if df.empty:
        return pd.DataFrame(columns=PRICE_COLUMNS)

    df = df.rename(columns={"adjClose": "adj_close"}).copy()
    if "date" not in df.columns or "close" not in df.columns:
        raise ValueError("Price data requires date and close columns")

    df["date"] = df["date"].astype(str).str.slice(0, 10)
    for col in ("open", "high", "low"):
        if col not in df.columns:
            df[col] = df["close"]
    if "volume" not in df.columns:
        df["volume"] = 0.0
    if "adj_close" not in df.columns:
        df["adj_close"] = np.nan

    dup_count = int(df["date"].duplicated(keep="last").sum())
    if dup_count:
        logger.warning(f"行情中有 {dup_count} 条重复日期，已保留最后一条")
        df = df.drop_duplicates(subset="date", keep="last")

    return df[PRICE_COLUMNS].sort_values("date").reset_index(drop=True)


def bars_from_frame(df: pd.DataFrame) -> List[Bar]:
    """DataFrame 转为 Bar 列表（按日期升序）"""
    df = normalize_frame(df)
    bars = []
    for row in df.itertuples(index=False):
        adj_close = None if row.adj_close is None or pd.isna(row.adj_close) else float(row.adj_close)
        bars.append(Bar(
            date=row.date,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            adj_close=adj_close,
        ))
    return bars


def frame_from_bars(bars: Sequence[Bar]) -> pd.DataFrame:
    """Bar 列表转为 DataFrame"""
    return pd.DataFrame(
        [[b.date, b.open, b.high, b.low, b.close, b.volume, b.adj_close] for b in bars],
        columns=PRICE_COLUMNS,
    )


def filter_by_date_range(bars: Sequence[Bar], start_date: str, end_date: str) -> List[Bar]:
    """保留 [start_date, end_date] 内的 K 线"""
    return [b for b in bars if start_date <= b.date <= end_date]


def symbol_filename(symbol: str) -> str:
    """行情文件名：^ 和 . 替换为 _，如 ^GSPC -> _GSPC.json，005930.KS -> 005930_KS.json"""
    return symbol.replace("^", "_").replace(".", "_") + ".json"


class JsonPriceLoader:
    """从 JSON 文件目录加载行情"""

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)

    def load(self, symbol: str) -> Dict:
        path = self.data_dir / symbol_filename(symbol)
        if not path.exists():
            raise NoDataError(f"找不到行情文件: {path}")
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if not payload.get("prices"):
            raise NoDataError(f"行情文件格式错误或没有数据: {path}")
        return payload

    def get_prices(self, symbol: str) -> pd.DataFrame:
        payload = self.load(symbol)
        df = normalize_frame(pd.DataFrame(payload["prices"]))
        logger.info(f"已加载 {symbol}: {len(df)} 条日线")
        return df


def summarize_prices(df: pd.DataFrame, symbol: str = "") -> Optional[Dict]:
    """
    行情摘要

    Returns:
        区间首末收盘价、区间涨幅、最高/最低价、平均成交量、年化波动率（%）；
        没有数据时返回 None
    """
    df = normalize_frame(df)
    if df.empty:
        return None

    first = df.iloc[0]
    last = df.iloc[-1]
    daily_returns = df["close"].pct_change().dropna()
    volatility = float(daily_returns.std(ddof=0) * math.sqrt(252) * 100) if len(daily_returns) else 0.0

    return {
        "symbol": symbol,
        "start_date": first["date"],
        "end_date": last["date"],
        "start_price": float(first["close"]),
        "end_price": float(last["close"]),
        "total_return_pct": float((last["close"] - first["close"]) / first["close"] * 100),
        "high": float(df["high"].max()),
        "low": float(df["low"].min()),
        "avg_volume": float(df["volume"].mean()),
        "volatility": volatility,
        "data_points": len(df),
    }

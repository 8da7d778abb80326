"""
本地 SQLite 行情库
- 存储单标的日线（OHLCV + adj_close）
- 按标的、日期区间读取，供回测使用
"""

import sqlite3
from pathlib import Path
from typing import Optional, List
import pandas as pd

from .loader import PRICE_COLUMNS, normalize_frame


class LocalDB:
    """本地 SQLite 数据库管理器"""

    def __init__(self, db_path: str = "data/prices.db"):
        """
        初始化数据库

        Args:
            db_path: 数据库文件路径
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """获取数据库连接"""
        return sqlite3.connect(self.db_path)

    def _init_schema(self):
        """初始化数据库 Schema"""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_bars (
                    symbol    TEXT NOT NULL,
                    date      TEXT NOT NULL,
                    open      REAL,
                    high      REAL,
                    low       REAL,
                    close     REAL,
                    volume    REAL,
                    adj_close REAL,
                    PRIMARY KEY (symbol, date)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bars_date ON daily_bars(date)")
            conn.commit()

    def upsert_bars(self, symbol: str, df: pd.DataFrame, batch_size: int = 500) -> int:
        """
        批量插入或更新日线

        Args:
            symbol: 标的代码
            df: 日线 DataFrame，至少包含 date, close
            batch_size: 批次大小

        Returns:
            插入/更新的行数
        """
        if df.empty:
            return 0

        df = normalize_frame(df)
        df = df.astype(object).where(pd.notna(df), None)
        rows = [[symbol] + row for row in df[PRICE_COLUMNS].values.tolist()]

        sql = """
            INSERT OR REPLACE INTO daily_bars
            (symbol, date, open, high, low, close, volume, adj_close)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        total = 0
        with self._get_conn() as conn:
            for i in range(0, len(rows), batch_size):
                batch = rows[i:i + batch_size]
                conn.executemany(sql, batch)
                total += len(batch)
            conn.commit()

        return total

    def get_prices(self, symbol: str, start_date: Optional[str] = None,
                   end_date: Optional[str] = None) -> pd.DataFrame:
        """
        读取单标的日线（按日期升序）

        Args:
            symbol: 标的代码
            start_date: 起始日期（含），为空不限
            end_date: 结束日期（含），为空不限
        """
        sql = "SELECT date, open, high, low, close, volume, adj_close FROM daily_bars WHERE symbol = ?"
        params: list = [symbol]
        if start_date:
            sql += " AND date >= ?"
            params.append(start_date)
        if end_date:
            sql += " AND date <= ?"
            params.append(end_date)
        sql += " ORDER BY date"

        with self._get_conn() as conn:
            df = pd.read_sql(sql, conn, params=params)
        return df.reset_index(drop=True)

    def get_symbols(self) -> List[str]:
        """库中所有标的"""
        with self._get_conn() as conn:
            cursor = conn.execute("SELECT DISTINCT symbol FROM daily_bars ORDER BY symbol")
            return [row[0] for row in cursor.fetchall()]

    def get_latest_date(self, symbol: Optional[str] = None) -> Optional[str]:
        """最新日期；指定 symbol 时只看该标的"""
        with self._get_conn() as conn:
            if symbol:
                cursor = conn.execute("SELECT MAX(date) FROM daily_bars WHERE symbol = ?", (symbol,))
            else:
                cursor = conn.execute("SELECT MAX(date) FROM daily_bars")
            result = cursor.fetchone()
            return result[0] if result and result[0] else None

    def get_record_count(self) -> int:
        """获取记录总数"""
        with self._get_conn() as conn:
            cursor = conn.execute("SELECT COUNT(*) FROM daily_bars")
            return cursor.fetchone()[0]

    def get_database_info(self) -> dict:
        """获取数据库信息"""
        if not self.db_path.exists():
            return {"exists": False, "path": str(self.db_path)}

        return {
            "exists": True,
            "path": str(self.db_path),
            "size_mb": round(self.db_path.stat().st_size / 1024 / 1024, 2),
            "symbol_count": len(self.get_symbols()),
            "record_count": self.get_record_count(),
            "latest_date": self.get_latest_date(),
        }

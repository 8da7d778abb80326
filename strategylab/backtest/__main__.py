"""
回测 CLI 入口

用法:
    python -m strategylab.backtest --symbol AAPL --strategy strategy.json
    python -m strategylab.backtest --symbol AAPL --strategy flow.json --start 2023-01-01 --end 2023-12-31
    python -m strategylab.backtest --symbol 600519.SS --strategy strategy.json --db-path data/prices.db --csv trades.csv
"""

import argparse
import logging
import sys
import time

from tqdm import tqdm

from strategylab.backtest.engine import BacktestEngine
from strategylab.backtest.models import STATUS_RUNNING, BacktestConfig
from strategylab.backtest.report import export_csv, print_report
from strategylab.backtest.strategy import load_strategy_file
from strategylab.data.cache import CachedPriceProvider
from strategylab.data.loader import JsonPriceLoader, summarize_prices
from strategylab.data.local_db import LocalDB
from strategylab.errors import BacktestError
from strategylab.settings import get_setting

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="单标的规则策略回测")
    parser.add_argument("--symbol", "-s", required=True, help="标的代码，如 AAPL、600519.SS")
    parser.add_argument("--strategy", required=True, help="策略 JSON 文件（规则列表或流程图）")
    parser.add_argument("--start", type=str, help="回测起始日期 (YYYY-MM-DD)，默认取数据首日")
    parser.add_argument("--end", type=str, help="回测结束日期 (YYYY-MM-DD)，默认取数据末日")
    parser.add_argument(
        "--capital", type=float, default=get_setting("initial_cash"),
        help="初始资金（默认 10000000）",
    )
    parser.add_argument(
        "--commission", type=float, default=get_setting("commission_rate"),
        help="手续费率（默认 0.0015）",
    )
    parser.add_argument(
        "--slippage", type=float, default=get_setting("slippage_rate"),
        help="滑点率（默认 0.001）",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--data-dir", type=str, default=get_setting("data_dir"),
        help="JSON 行情目录",
    )
    source.add_argument("--db-path", type=str, help="本地 SQLite 行情库路径")
    parser.add_argument("--csv", type=str, help="导出交易明细到 CSV 文件")
    parser.add_argument("--log-level", type=str, default="INFO", help="日志级别（默认 INFO）")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    start_time = time.time()

    # 加载数据
    if args.db_path:
        logger.info(f"加载本地数据库: {args.db_path}")
        provider = CachedPriceProvider(LocalDB(args.db_path))
    else:
        logger.info(f"加载 JSON 行情目录: {args.data_dir}")
        provider = CachedPriceProvider(JsonPriceLoader(args.data_dir))

    try:
        df = provider.get_prices(args.symbol)
        summary = summarize_prices(df, args.symbol)
        if summary is None:
            logger.error(f"{args.symbol} 没有行情数据")
            sys.exit(1)
        logger.info(
            f"{args.symbol}: {summary['start_date']} ~ {summary['end_date']}, "
            f"{summary['data_points']} 条记录"
        )

        strategy = load_strategy_file(args.strategy)
        config = BacktestConfig(
            symbol=args.symbol,
            start_date=args.start or summary["start_date"],
            end_date=args.end or summary["end_date"],
            initial_cash=args.capital,
            commission_rate=args.commission,
            slippage_rate=args.slippage,
        )
    except BacktestError as e:
        logger.error(str(e))
        sys.exit(1)

    # 进度条
    pbar = None

    def progress_callback(current, total, current_date, status, message=None):
        nonlocal pbar
        if status != STATUS_RUNNING:
            return
        if pbar is None:
            pbar = tqdm(total=total, desc="回测")
        pbar.update(1)

    engine = BacktestEngine(config, strategy, progress_callback=progress_callback)
    try:
        result = engine.run(df)
    except BacktestError as e:
        logger.error(f"回测失败: {e}")
        sys.exit(1)
    finally:
        if pbar:
            pbar.close()

    duration = time.time() - start_time
    logger.info(f"回测完成，耗时 {duration:.1f} 秒")

    print_report(result)

    if args.csv:
        export_csv(result, args.csv)


if __name__ == "__main__":
    main()

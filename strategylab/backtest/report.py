"""回测报告：终端格式化 + CSV 导出"""

import csv
from typing import Sequence

from .models import RESULT_COMPLETED, BacktestResult


def _signed(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}"


def print_report(result: BacktestResult):
    """打印终端回测报告"""
    cfg = result.config
    s = result.stats

    print()
    print("=" * 50)
    print(f"  回测报告：{cfg.symbol}")
    print(f"  回测区间：{result.start_date} ~ {result.end_date}（{result.duration_days} 天）")
    print(f"  初始资金：{cfg.initial_cash:,.0f}")
    print(f"  手续费率：{cfg.commission_rate:.4f}  滑点：{cfg.slippage_rate:.4f}")
    if result.status != RESULT_COMPLETED:
        print(f"  状态：{result.status}")
    print("=" * 50)

    print()
    print("【绩效概览】")
    print(f"  总收益:        {_signed(s.total_return)}")
    print(f"  总收益率:      {_signed(s.total_return_pct)}%")
    print(f"  年化收益率:    {_signed(s.annualized_return)}%")
    print(f"  年化波动率:    {s.volatility:.2f}%")
    print(f"  夏普比率:      {s.sharpe_ratio:.2f}")
    print(f"  最大回撤:      -{s.max_drawdown:.2f}%  (持续 {s.max_drawdown_duration_days} 天)")

    print()
    print("【交易统计】")
    print(f"  总交易笔数:    {s.total_trades}")
    if s.total_trades > 0:
        print(f"  胜率:          {s.win_rate:.1f}%")
        print(f"  盈亏比:        {s.profit_factor:.2f}")
        print(f"  平均每笔收益:  {_signed(s.avg_trade_return)}")

    if result.trades:
        print()
        recent = result.trades[-10:]
        print(f"【交易明细】(最近 {len(recent)} 笔)")
        print(f"  {'日期':>10}  {'方向':>4}  {'数量':>8}  {'价格':>10}  {'手续费':>9}")
        for t in recent:
            print(
                f"  {t.date:>10}  {t.direction:>4}  {t.quantity:>8}  "
                f"{t.price:>10.2f}  {t.commission:>9.2f}"
            )

    print()
    print(f"  期末净值: {result.final_value:,.2f}")
    print(f"  耗时: {result.execution_time_ms:.1f}ms")
    print("=" * 50)
    print()


def print_comparison(results: Sequence[BacktestResult]):
    """多组配置结果对比"""
    print()
    print(f"{'#':>3} {'初始资金':>12} {'手续费':>7} {'滑点':>7} | {'收益率':>8} {'回撤':>7} {'夏普':>6} {'笔数':>5}")
    print("-" * 65)
    for i, r in enumerate(results):
        cfg, s = r.config, r.stats
        print(
            f"{i + 1:>3} {cfg.initial_cash:>12,.0f} {cfg.commission_rate:>7.4f} {cfg.slippage_rate:>7.4f} | "
            f"{s.total_return_pct:>+7.2f}% {s.max_drawdown:>6.2f}% {s.sharpe_ratio:>6.2f} {s.total_trades:>5}"
        )
    print()


def export_csv(result: BacktestResult, path: str):
    """导出交易明细到 CSV"""
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.writer(f)
        writer.writerow([
            "成交ID", "日期", "方向", "代码",
            "数量", "价格", "手续费", "金额",
        ])
        for t in result.trades:
            writer.writerow([
                t.id, t.date, t.direction, t.symbol,
                t.quantity, f"{t.price:.4f}", f"{t.commission:.2f}", f"{t.net_amount:.2f}",
            ])
    print(f"交易明细已导出: {path} ({len(result.trades)} 笔)")

"""绩效指标计算"""

import math
from datetime import datetime
from typing import List, Sequence, Tuple

import numpy as np

from .models import DATE_FORMAT, BacktestStats, PortfolioSnapshot, Trade

TRADING_DAYS_PER_YEAR = 252


def _days_between(d1: str, d2: str) -> int:
    return (datetime.strptime(d2, DATE_FORMAT) - datetime.strptime(d1, DATE_FORMAT)).days


def calc_daily_returns(snapshots: Sequence[PortfolioSnapshot]) -> np.ndarray:
    """相邻快照之间的收益率"""
    values = np.array([s.total_value for s in snapshots], dtype=float)
    if len(values) < 2:
        return np.array([], dtype=float)
    prev = values[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.where(prev != 0, (values[1:] - prev) / prev, 0.0)
    return returns


def calc_max_drawdown(snapshots: Sequence[PortfolioSnapshot], initial_cash: float) -> Tuple[float, int]:
    """
    最大回撤及最长回撤持续天数

    Returns:
        (最大回撤 %, 从峰值到恢复（或到最后一个快照）的最长自然日天数)
    """
    if not snapshots:
        return 0.0, 0

    peak = initial_cash
    peak_date = snapshots[0].date
    in_drawdown = False
    max_dd = 0.0
    max_duration = 0

    for snap in snapshots:
        if snap.total_value >= peak:
            if in_drawdown:
                max_duration = max(max_duration, _days_between(peak_date, snap.date))
                in_drawdown = False
            peak = snap.total_value
            peak_date = snap.date
            continue
        in_drawdown = True
        max_dd = max(max_dd, (peak - snap.total_value) / peak)

    if in_drawdown:
        max_duration = max(max_duration, _days_between(peak_date, snapshots[-1].date))

    return max_dd * 100, max_duration


def replay_sells(trades: Sequence[Trade]) -> List[Tuple[bool, float]]:
    """
    按平均成本法回放成交，返回每笔卖出的 (是否盈利, 已实现盈亏)

    买入更新加权平均成本；卖出价高于当时平均成本即为盈利，
    已实现盈亏扣除卖出手续费；清仓后成本归零。
    """
    held = 0
    avg_cost = 0.0
    outcomes = []
    for trade in trades:
        if trade.is_buy:
            total = held + trade.quantity
            avg_cost = (held * avg_cost + trade.quantity * trade.price) / total
            held = total
            continue
        won = held > 0 and trade.price > avg_cost
        outcomes.append((won, (trade.price - avg_cost) * trade.quantity - trade.commission))
        held = max(held - trade.quantity, 0)
        if held == 0:
            avg_cost = 0.0
    return outcomes


def calc_stats(
    initial_cash: float,
    snapshots: Sequence[PortfolioSnapshot],
    trades: Sequence[Trade],
    duration_days: int,
) -> BacktestStats:
    """
    计算回测统计指标

    Args:
        initial_cash: 初始资金
        snapshots: 按日期升序的组合快照
        trades: 全部成交（按时间顺序）
        duration_days: 回测区间自然日天数

    Returns:
        BacktestStats，百分比字段单位为 %
    """
    stats = BacktestStats(total_trades=len(trades))
    if not snapshots:
        return stats

    final_value = snapshots[-1].total_value
    stats.total_return = final_value - initial_cash
    stats.total_return_pct = stats.total_return / initial_cash * 100

    # 年化收益率
    annualized = 0.0
    if duration_days > 0 and final_value > 0:
        annualized = (final_value / initial_cash) ** (365 / duration_days) - 1
    stats.annualized_return = annualized * 100

    # 年化波动率（总体标准差）
    daily_returns = calc_daily_returns(snapshots)
    volatility = float(np.std(daily_returns)) * math.sqrt(TRADING_DAYS_PER_YEAR) if len(daily_returns) else 0.0
    stats.volatility = volatility * 100

    # 夏普比率（无风险利率为 0），零波动时定义为 0
    stats.sharpe_ratio = annualized / volatility if volatility > 0 else 0.0

    stats.max_drawdown, stats.max_drawdown_duration_days = calc_max_drawdown(snapshots, initial_cash)

    # 交易统计
    outcomes = replay_sells(trades)
    if outcomes:
        stats.win_rate = sum(1 for won, _ in outcomes if won) / len(outcomes) * 100

    gross_profit = sum(pnl for _, pnl in outcomes if pnl > 0)
    gross_loss = abs(sum(pnl for _, pnl in outcomes if pnl < 0))
    if gross_loss > 0:
        stats.profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        stats.profit_factor = float("inf")

    stats.avg_trade_return = stats.total_return / len(trades) if trades else 0.0
    return stats

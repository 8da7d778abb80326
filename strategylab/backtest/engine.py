"""
回测引擎

逐日驱动：
- 过滤回测区间内的 K 线，第一根只做基准快照（没有前一日数据）
- 之后每根 K 线按规则顺序判断条件，成立则依次执行该规则的动作
- 每 5 根 K 线及最后一根记录组合快照
- 结束后计算统计指标

策略既可以是规则列表（Strategy），也可以是流程图（StrategyFlow）；
流程图策略每根 K 线运行一次 FlowRunner，并挂载本引擎的账本。
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Union

import pandas as pd

from strategylab.backtest.metrics import calc_stats
from strategylab.backtest.models import (
    RESULT_CANCELLED, RESULT_COMPLETED,
    STATUS_COMPLETED, STATUS_ERROR, STATUS_PREPARING, STATUS_RUNNING,
    BacktestConfig, BacktestResult, Bar, PortfolioSnapshot,
)
from strategylab.backtest.portfolio import Portfolio
from strategylab.data.loader import bars_from_frame, filter_by_date_range
from strategylab.errors import ConfigError, FlowExecutionError, NoDataError
from strategylab.flow.graph import StrategyFlow, validate_flow
from strategylab.flow.nodes import FlowContext
from strategylab.flow.runner import FLOW_FAILED, FlowRunner
from strategylab.rules.actions import action_direction, execute_action, fill_price
from strategylab.rules.conditions import evaluate_condition, price_change_percent
from strategylab.rules.strategy import Rule, RuleBlock, Strategy, compile_rules, validate_strategy
from strategylab.settings import get_setting

logger = logging.getLogger(__name__)

# callback(current, total, current_date, status, message)
ProgressCallback = Callable[[int, int, str, str, Optional[str]], None]


class BacktestEngine:
    """回测引擎"""

    def __init__(
        self,
        config: BacktestConfig,
        strategy: Union[Strategy, StrategyFlow],
        progress_callback: Optional[ProgressCallback] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
        snapshot_interval: Optional[int] = None,
    ):
        self.config = config
        self.strategy = strategy
        self.progress_callback = progress_callback
        self.cancel_check = cancel_check
        self.snapshot_interval = (
            snapshot_interval if snapshot_interval is not None else get_setting("snapshot_interval")
        )
        if self.snapshot_interval <= 0:
            raise ConfigError(f"snapshot_interval must be positive: {self.snapshot_interval}")

        self.rules: List[Rule] = []
        self.flow: Optional[StrategyFlow] = None

    def _prepare_strategy(self):
        """运行前校验策略，未知类型直接报错，不进入模拟"""
        if isinstance(self.strategy, StrategyFlow):
            validate_flow(self.strategy)
            self.flow = self.strategy
        else:
            validate_strategy(self.strategy)
            self.rules = compile_rules(self.strategy)

    def run(self, bars: Union[Sequence[Bar], pd.DataFrame]) -> BacktestResult:
        started = time.perf_counter()
        self._prepare_strategy()

        if isinstance(bars, pd.DataFrame):
            bars = bars_from_frame(bars)
        prices = filter_by_date_range(bars, self.config.start_date, self.config.end_date)

        if not prices:
            message = f"{self.config.symbol} 在 {self.config.start_date} ~ {self.config.end_date} 没有行情数据"
            self._report(0, 0, self.config.start_date, STATUS_ERROR, message)
            raise NoDataError(message)

        total = len(prices)
        logger.info(
            f"开始回测 {self.config.symbol}: {prices[0].date} ~ {prices[-1].date}, "
            f"{total} 根 K 线, 初始资金 {self.config.initial_cash:,.0f}"
        )
        self._report(0, total, prices[0].date, STATUS_PREPARING)

        portfolio = Portfolio(self.config.initial_cash, self.config.symbol)
        history: List[PortfolioSnapshot] = [portfolio.snapshot(prices[0].date, prices[0].close)]
        status = RESULT_COMPLETED

        for i, bar in enumerate(prices):
            if self.cancel_check is not None and self.cancel_check():
                status = RESULT_CANCELLED
                last = prices[i - 1] if i > 0 else bar
                if history[-1].date != last.date:
                    history.append(portfolio.snapshot(last.date, last.close))
                logger.info(f"回测已取消，停止于 {bar.date}")
                self._report(i, total, bar.date, STATUS_ERROR, "回测已取消")
                break

            self._report(i, total, bar.date, STATUS_RUNNING, f"{bar.date} 处理中...")
            if i == 0:
                continue

            try:
                self._execute_bar(portfolio, bar, prices[i - 1])
            except Exception as e:
                self._report(i, total, bar.date, STATUS_ERROR, str(e))
                raise

            if i % self.snapshot_interval == 0 or i == total - 1:
                history.append(portfolio.snapshot(bar.date, bar.close))

        if status == RESULT_COMPLETED:
            self._report(total, total, prices[-1].date, STATUS_COMPLETED)

        stats = calc_stats(
            self.config.initial_cash, history, portfolio.trades, self.config.duration_days,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"回测结束: {len(portfolio.trades)} 笔成交, 总收益 {stats.total_return_pct:+.2f}%, "
            f"耗时 {elapsed_ms:.1f}ms"
        )

        return BacktestResult(
            config=self.config,
            trades=list(portfolio.trades),
            portfolio_history=history,
            stats=stats,
            start_date=self.config.start_date,
            end_date=self.config.end_date,
            duration_days=self.config.duration_days,
            execution_time_ms=elapsed_ms,
            status=status,
        )

    def _execute_bar(self, portfolio: Portfolio, bar: Bar, prev: Bar):
        if self.flow is not None:
            self._execute_flow(portfolio, bar, prev)
            return

        change = price_change_percent(bar, prev) or 0.0
        for rule in self.rules:
            if not rule.enabled:
                continue
            cond = rule.condition
            if not evaluate_condition(cond.condition_kind, cond.condition_params, bar, prev):
                continue
            for action in rule.actions:
                self._execute_action(portfolio, action, bar, change)

    def _execute_action(self, portfolio: Portfolio, block: RuleBlock, bar: Bar, change: float):
        direction = action_direction(block.action_kind)
        price = fill_price(bar.close, direction, self.config.slippage_rate) if direction else bar.close
        trade = execute_action(
            block.action_kind, block.action_params, price,
            self.config.commission_rate, portfolio, bar.date,
            change_percent=change,
        )
        if trade is None:
            logger.debug(f"{bar.date} 动作 {block.id} ({block.action_kind}) 未成交")

    def _execute_flow(self, portfolio: Portfolio, bar: Bar, prev: Bar):
        context = FlowContext(
            current_bar=bar,
            previous_bar=prev,
            commission_rate=self.config.commission_rate,
            slippage_rate=self.config.slippage_rate,
            symbol=self.config.symbol,
            portfolio=portfolio,
        )
        result = FlowRunner(self.flow, context).run()
        if result.status == FLOW_FAILED:
            raise FlowExecutionError(f"{bar.date} 流程执行失败: {result.error}")

    def _report(self, current: int, total: int, current_date: str, status: str,
                message: Optional[str] = None):
        if self.progress_callback:
            self.progress_callback(current, total, current_date, status, message)


def run_backtest(
    config: BacktestConfig,
    strategy: Union[Strategy, StrategyFlow],
    bars: Union[Sequence[Bar], pd.DataFrame],
    progress_callback: Optional[ProgressCallback] = None,
    cancel_check: Optional[Callable[[], bool]] = None,
) -> BacktestResult:
    """运行一次回测的便捷函数"""
    engine = BacktestEngine(config, strategy, progress_callback, cancel_check)
    return engine.run(bars)

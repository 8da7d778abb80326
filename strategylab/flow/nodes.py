"""
流程图节点

每种节点一个类，只携带自己需要的参数，并实现 run(context)。
节点只返回描述性的结果字典，遍历逻辑由 FlowRunner 负责。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from strategylab.backtest.models import Bar
from strategylab.backtest.portfolio import Portfolio
from strategylab.errors import FlowExecutionError
from strategylab.rules.actions import (
    NOOP_ACTION_KINDS, action_direction, execute_action, fill_price,
)
from strategylab.rules.conditions import evaluate_condition, price_change_percent

START = "start"
SCHEDULE = "schedule"
CONDITION = "condition"
ACTION = "action"
END = "end"


@dataclass
class FlowContext:
    """
    流程执行上下文

    portfolio 为空时，动作节点只在临时账本（由 cash/shares 构造）上推演结果，
    不影响调用方的状态。
    """
    current_bar: Optional[Bar] = None
    previous_bar: Optional[Bar] = None
    cash: float = 0.0
    shares: int = 0
    avg_price: float = 0.0
    commission_rate: float = 0.0
    slippage_rate: float = 0.0
    symbol: str = ""
    portfolio: Optional[Portfolio] = None
    schedule_predicate: Optional[Callable[["ScheduleNode", Optional[Bar]], bool]] = None


@dataclass
class FlowNode(ABC):
    """流程图节点基类"""
    id: str
    label: str = ""

    type: str = field(default="", init=False)

    @abstractmethod
    def run(self, context: FlowContext) -> Dict[str, Any]:
        """执行节点，返回结果字典"""


@dataclass
class StartNode(FlowNode):
    type: str = field(default=START, init=False)

    def run(self, context: FlowContext) -> Dict[str, Any]:
        return {"type": START, "message": "策略开始"}


@dataclass
class EndNode(FlowNode):
    type: str = field(default=END, init=False)

    def run(self, context: FlowContext) -> Dict[str, Any]:
        return {"type": END, "message": "策略执行完毕"}


@dataclass
class ScheduleNode(FlowNode):
    """执行时间窗口；判定交给调用方提供的 schedule_predicate，缺省总是成立"""
    schedule_type: str = "market_open"
    interval_minutes: Optional[int] = None
    execution_time: Optional[str] = None
    weekday: Optional[int] = None

    type: str = field(default=SCHEDULE, init=False)

    def run(self, context: FlowContext) -> Dict[str, Any]:
        should_execute = True
        if context.schedule_predicate is not None:
            should_execute = bool(context.schedule_predicate(self, context.current_bar))
        return {
            "type": SCHEDULE,
            "schedule_type": self.schedule_type,
            "should_execute": should_execute,
            "message": "满足执行时间" if should_execute else "不满足执行时间",
        }


@dataclass
class ConditionNode(FlowNode):
    condition_kind: str = "always"
    params: Dict[str, Any] = field(default_factory=dict)

    type: str = field(default=CONDITION, init=False)

    def run(self, context: FlowContext) -> Dict[str, Any]:
        if context.current_bar is None:
            raise FlowExecutionError(f"条件节点 {self.id} 缺少当日行情")
        met = evaluate_condition(
            self.condition_kind, self.params, context.current_bar, context.previous_bar,
        )
        return {
            "type": CONDITION,
            "condition_kind": self.condition_kind,
            "condition_met": met,
            "message": "条件成立" if met else "条件不成立",
        }


@dataclass
class ActionNode(FlowNode):
    action_kind: str = "hold"
    params: Dict[str, Any] = field(default_factory=dict)

    type: str = field(default=ACTION, init=False)

    def run(self, context: FlowContext) -> Dict[str, Any]:
        bar = context.current_bar
        if bar is None:
            raise FlowExecutionError(f"动作节点 {self.id} 缺少当日行情")

        portfolio = context.portfolio
        if portfolio is None:
            portfolio = Portfolio.with_holdings(
                context.cash, context.shares, context.avg_price, context.symbol,
            )

        change = 0.0
        if context.previous_bar is not None:
            change = price_change_percent(bar, context.previous_bar) or 0.0

        direction = action_direction(self.action_kind)
        price = fill_price(bar.close, direction, context.slippage_rate) if direction else bar.close
        trade = execute_action(
            self.action_kind, self.params, price, context.commission_rate,
            portfolio, bar.date, change_percent=change,
        )

        executed = trade is not None or self.action_kind in NOOP_ACTION_KINDS
        result: Dict[str, Any] = {
            "type": ACTION,
            "action_kind": self.action_kind,
            "executed": executed,
            "trade": trade,
            "price": price,
            "cash_after": portfolio.cash,
            "shares_after": portfolio.shares,
        }
        if trade is not None:
            result["message"] = f"{trade.direction} {trade.quantity} @ {trade.price:.2f}"
        elif executed:
            result["message"] = f"{self.action_kind}"
        else:
            result["message"] = f"{self.action_kind} 未成交"
        return result

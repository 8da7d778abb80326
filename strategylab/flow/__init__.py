"""流程图策略模型与执行器"""

from .nodes import (
    FlowContext,
    FlowNode,
    StartNode,
    ScheduleNode,
    ConditionNode,
    ActionNode,
    EndNode,
)
from .graph import FlowEdge, StrategyFlow, flow_from_dict, has_cycle, validate_flow
from .runner import (
    FlowExecutionResult,
    FlowNodeResult,
    FlowRunner,
    execute_strategy_flow,
)

__all__ = [
    "FlowContext",
    "FlowNode",
    "StartNode",
    "ScheduleNode",
    "ConditionNode",
    "ActionNode",
    "EndNode",
    "FlowEdge",
    "StrategyFlow",
    "flow_from_dict",
    "has_cycle",
    "validate_flow",
    "FlowExecutionResult",
    "FlowNodeResult",
    "FlowRunner",
    "execute_strategy_flow",
]

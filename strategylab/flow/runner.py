"""
流程图执行器

从唯一的开始节点出发，同步深度优先遍历：
- 条件节点只沿与结果匹配的分支边前进（未标记的边视为 true 分支）
- 调度节点判定不执行时不再前进
- 其他节点沿全部出边前进
- 没有出边的节点即为终点，不要求存在结束节点

含环路的流程在访问任何节点前即失败；任一节点出错即终止整个执行，
状态置为 failed，并返回已收集的结果。
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from strategylab.errors import FlowExecutionError
from .graph import BRANCH_FALSE, BRANCH_TRUE, FlowEdge, StrategyFlow, has_cycle
from .nodes import ActionNode, ConditionNode, FlowContext, FlowNode, ScheduleNode

logger = logging.getLogger(__name__)

FLOW_RUNNING = "running"
FLOW_COMPLETED = "completed"
FLOW_FAILED = "failed"


@dataclass
class FlowNodeResult:
    """单个节点的执行结果"""
    node_id: str
    node_type: str
    executed: bool = False
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class FlowExecutionResult:
    """整次流程执行的结果"""
    execution_id: str
    flow_id: str
    status: str = FLOW_RUNNING
    node_results: List[FlowNodeResult] = field(default_factory=list)
    final_actions: List[Dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def trades(self) -> list:
        return [a["trade"] for a in self.final_actions if a.get("trade") is not None]


class FlowRunner:
    """流程图执行器"""

    def __init__(self, flow: StrategyFlow, context: Optional[FlowContext] = None):
        self.flow = flow
        self.context = context or FlowContext()

    def run(self) -> FlowExecutionResult:
        result = FlowExecutionResult(execution_id=uuid.uuid4().hex, flow_id=self.flow.id)

        try:
            starts = self.flow.start_nodes()
            if not starts:
                raise FlowExecutionError("找不到开始节点")
            if has_cycle(self.flow):
                raise FlowExecutionError("流程存在环路")
            self._run_from(starts[0].id, result)
            result.status = FLOW_COMPLETED
        except Exception as e:
            logger.error(f"流程执行失败 (flow={self.flow.id}): {e}")
            result.status = FLOW_FAILED
            result.error = str(e)

        result.finished_at = datetime.now()
        return result

    def _run_from(self, start_id: str, result: FlowExecutionResult):
        # 显式栈，出边逆序入栈以保持先序访问顺序
        stack = [start_id]
        while stack:
            node_id = stack.pop()
            node = self.flow.get_node(node_id)
            if node is None:
                raise FlowExecutionError(f"找不到节点: {node_id}")

            node_result = FlowNodeResult(node_id=node.id, node_type=node.type)
            try:
                output = node.run(self.context)
            except Exception as e:
                node_result.error = str(e)
                result.node_results.append(node_result)
                raise

            node_result.executed = True
            node_result.result = output
            result.node_results.append(node_result)

            if isinstance(node, ActionNode) and output.get("executed"):
                result.final_actions.append({
                    "node_id": node.id,
                    "action_kind": node.action_kind,
                    "params": dict(node.params),
                    "trade": output.get("trade"),
                    "message": output.get("message"),
                })

            for edge in reversed(self._next_edges(node, output)):
                stack.append(edge.target)

    def _next_edges(self, node: FlowNode, output: Dict[str, Any]) -> List[FlowEdge]:
        if isinstance(node, ScheduleNode) and not output.get("should_execute", True):
            return []
        edges = self.flow.outgoing(node.id)
        if not isinstance(node, ConditionNode):
            return edges
        branch = BRANCH_TRUE if output.get("condition_met") else BRANCH_FALSE
        return [e for e in edges if (e.branch or BRANCH_TRUE) == branch]


def execute_strategy_flow(flow: StrategyFlow, context: Optional[FlowContext] = None) -> FlowExecutionResult:
    """执行流程图的便捷函数"""
    return FlowRunner(flow, context).run()

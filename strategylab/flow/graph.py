"""流程图策略：节点 + 有向边"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from strategylab.errors import StrategyValidationError
from strategylab.rules.actions import ACTION_KINDS, FLOW_ONLY_ACTION_KINDS
from strategylab.rules.strategy import normalize_params, validate_action, validate_condition
from .nodes import (
    ACTION, CONDITION, END, SCHEDULE, START,
    ActionNode, ConditionNode, EndNode, FlowNode, ScheduleNode, StartNode,
)

BRANCH_TRUE = "true"
BRANCH_FALSE = "false"


@dataclass(frozen=True)
class FlowEdge:
    """有向边；从条件节点出发的边可标记 true/false 分支"""
    source: str
    target: str
    branch: Optional[str] = None
    id: str = ""


@dataclass
class StrategyFlow:
    """流程图策略"""
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)
    id: str = ""
    name: str = ""

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def start_nodes(self) -> List[FlowNode]:
        return [n for n in self.nodes if isinstance(n, StartNode)]

    def outgoing(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.edges if e.source == node_id]


def has_cycle(flow: StrategyFlow) -> bool:
    """按拓扑排序（Kahn）判断流程图是否有环，忽略引用不存在节点的边"""
    ids = {n.id for n in flow.nodes}
    in_degree = {node_id: 0 for node_id in ids}
    children: Dict[str, List[str]] = {node_id: [] for node_id in ids}
    for edge in flow.edges:
        if edge.source in ids and edge.target in ids:
            children[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    ready = [node_id for node_id, degree in in_degree.items() if degree == 0]
    removed = 0
    while ready:
        node_id = ready.pop()
        removed += 1
        for child in children[node_id]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                ready.append(child)
    return removed < len(ids)


def validate_flow(flow: StrategyFlow):
    """
    运行前校验流程图

    Raises:
        StrategyValidationError: 开始节点数量不为 1、边引用不存在的节点、
            分支标记非法、存在环路、条件/动作类型未知
    """
    starts = flow.start_nodes()
    if len(starts) != 1:
        raise StrategyValidationError(f"Flow must have exactly one start node, found {len(starts)}")

    ids = [n.id for n in flow.nodes]
    if len(set(ids)) != len(ids):
        raise StrategyValidationError("Duplicate node ids")

    for edge in flow.edges:
        if edge.source not in ids or edge.target not in ids:
            raise StrategyValidationError(f"Edge {edge.source}->{edge.target} references unknown node")
        if edge.branch not in (None, BRANCH_TRUE, BRANCH_FALSE):
            raise StrategyValidationError(f"Invalid branch tag: {edge.branch}")

    if has_cycle(flow):
        raise StrategyValidationError("Flow contains a cycle")

    for node in flow.nodes:
        if isinstance(node, ConditionNode):
            validate_condition(node.condition_kind, node.params, node.id)
            branches = [e.branch for e in flow.outgoing(node.id) if e.branch is not None]
            if len(branches) != len(set(branches)):
                raise StrategyValidationError(
                    f"Condition node {node.id} has duplicate branch edges", block_id=node.id,
                )
        elif isinstance(node, ActionNode):
            validate_action(
                node.action_kind, node.params, node.id,
                allowed=ACTION_KINDS | FLOW_ONLY_ACTION_KINDS,
            )


def _node_from_dict(raw: Dict[str, Any]) -> FlowNode:
    data = raw.get("data") or raw
    node_type = data.get("type") or raw.get("type")
    node_id = str(raw["id"])
    label = data.get("label", "")

    if node_type == START:
        return StartNode(id=node_id, label=label)
    if node_type == END:
        return EndNode(id=node_id, label=label)
    if node_type == SCHEDULE:
        params = data.get("schedule_params") or data.get("scheduleParams") or {}
        return ScheduleNode(
            id=node_id, label=label,
            schedule_type=params.get("schedule_type") or params.get("scheduleType") or "market_open",
            interval_minutes=params.get("interval_minutes") or params.get("intervalMinutes"),
            execution_time=params.get("execution_time") or params.get("executionTime"),
            weekday=params.get("weekday"),
        )
    if node_type == CONDITION:
        return ConditionNode(
            id=node_id, label=label,
            condition_kind=data.get("condition_kind") or data.get("conditionType"),
            params=normalize_params(data.get("condition_params") or data.get("conditionParams")),
        )
    if node_type == ACTION:
        return ActionNode(
            id=node_id, label=label,
            action_kind=data.get("action_kind") or data.get("actionType"),
            params=normalize_params(data.get("action_params") or data.get("actionParams")),
        )
    raise StrategyValidationError(f"Unknown node type: {node_type}", block_id=node_id)


def flow_from_dict(payload: Dict[str, Any]) -> StrategyFlow:
    """从编辑器 JSON（nodes[].data.type，edges[].sourceHandle）构造流程图"""
    nodes = [_node_from_dict(raw) for raw in payload.get("nodes", [])]
    edges = []
    for raw in payload.get("edges", []):
        branch = raw.get("branch") or raw.get("sourceHandle")
        if branch not in (BRANCH_TRUE, BRANCH_FALSE):
            branch = None
        edges.append(FlowEdge(
            source=str(raw["source"]),
            target=str(raw["target"]),
            branch=branch,
            id=str(raw.get("id", "")),
        ))
    return StrategyFlow(
        nodes=nodes, edges=edges,
        id=str(payload.get("id", "")), name=payload.get("name", ""),
    )

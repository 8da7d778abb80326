"""
Layer 1 单元测试 - 流程图校验与执行
"""

import pytest

from strategylab.backtest.models import Bar
from strategylab.backtest.portfolio import Portfolio
from strategylab.errors import StrategyValidationError
from strategylab.flow.graph import FlowEdge, StrategyFlow, flow_from_dict, has_cycle, validate_flow
from strategylab.flow.nodes import (
    ActionNode,
    ConditionNode,
    EndNode,
    FlowContext,
    ScheduleNode,
    StartNode,
)
from strategylab.flow.runner import FLOW_COMPLETED, FLOW_FAILED, FlowRunner, execute_strategy_flow

PREV = Bar(date="2024-01-01", open=1000, high=1000, low=1000, close=1000)
UP = Bar(date="2024-01-02", open=1050, high=1050, low=1050, close=1050)
DOWN = Bar(date="2024-01-02", open=950, high=950, low=950, close=950)

RISE_5 = {"threshold_percent": 5, "direction": "up"}


def make_context(bar, cash=200_000, shares=0, portfolio=None):
    return FlowContext(current_bar=bar, previous_bar=PREV, cash=cash, shares=shares,
                       symbol="TEST", portfolio=portfolio)


def branching_flow():
    """开始 -> 条件(涨 5%) -true-> 买入 -> 结束; -false-> 记录日志"""
    return StrategyFlow(
        id="flow-1",
        nodes=[
            StartNode(id="s"),
            ConditionNode(id="c", condition_kind="close_price_change", params=RISE_5),
            ActionNode(id="buy", action_kind="buy_shares", params={"count": 100}),
            ActionNode(id="log", action_kind="log"),
            EndNode(id="e"),
        ],
        edges=[
            FlowEdge("s", "c"),
            FlowEdge("c", "buy", branch="true"),
            FlowEdge("c", "log", branch="false"),
            FlowEdge("buy", "e"),
        ],
    )


def hold_chain(length):
    """开始 -> n0 -> n1 -> ... 的直线流程"""
    nodes = [StartNode(id="s")] + [ActionNode(id=f"n{i}", action_kind="hold") for i in range(length)]
    ids = [n.id for n in nodes]
    edges = [FlowEdge(a, b) for a, b in zip(ids, ids[1:])]
    return StrategyFlow(nodes=nodes, edges=edges)


def diamond_chain(count):
    """开始节点后串联 count 个菱形：上一汇合点 -> 左/右 -> 汇合点"""
    nodes = [StartNode(id="s")]
    edges = []
    split = "s"
    for i in range(count):
        nodes += [
            ActionNode(id=f"l{i}", action_kind="hold"),
            ActionNode(id=f"r{i}", action_kind="hold"),
            ActionNode(id=f"j{i}", action_kind="hold"),
        ]
        edges += [
            FlowEdge(split, f"l{i}"), FlowEdge(split, f"r{i}"),
            FlowEdge(f"l{i}", f"j{i}"), FlowEdge(f"r{i}", f"j{i}"),
        ]
        split = f"j{i}"
    return StrategyFlow(nodes=nodes, edges=edges)


class TestFlowRunner:

    def test_true_branch(self):
        result = execute_strategy_flow(branching_flow(), make_context(UP))
        assert result.status == FLOW_COMPLETED
        assert [r.node_id for r in result.node_results] == ["s", "c", "buy", "e"]
        assert [a["node_id"] for a in result.final_actions] == ["buy"]
        assert result.trades[0].quantity == 100
        assert result.finished_at is not None

    def test_false_branch(self):
        result = execute_strategy_flow(branching_flow(), make_context(DOWN))
        assert [r.node_id for r in result.node_results] == ["s", "c", "log"]
        assert [a["action_kind"] for a in result.final_actions] == ["log"]
        assert result.trades == []

    def test_scratch_portfolio_reports_balances(self):
        result = execute_strategy_flow(branching_flow(), make_context(UP))
        buy = result.node_results[2].result
        assert buy["executed"] is True
        assert buy["cash_after"] == pytest.approx(200_000 - 105_000)
        assert buy["shares_after"] == 100

    def test_attached_portfolio_is_updated(self):
        portfolio = Portfolio(200_000, "TEST")
        execute_strategy_flow(branching_flow(), make_context(UP, portfolio=portfolio))
        assert portfolio.shares == 100
        assert portfolio.cash == pytest.approx(95_000)

    def test_untagged_edge_is_true_branch(self):
        flow = StrategyFlow(
            nodes=[
                StartNode(id="s"),
                ConditionNode(id="c", condition_kind="close_price_change", params=RISE_5),
                ActionNode(id="a", action_kind="hold"),
            ],
            edges=[FlowEdge("s", "c"), FlowEdge("c", "a")],
        )
        met = execute_strategy_flow(flow, make_context(UP))
        assert [r.node_id for r in met.node_results] == ["s", "c", "a"]
        not_met = execute_strategy_flow(flow, make_context(DOWN))
        assert [r.node_id for r in not_met.node_results] == ["s", "c"]

    def test_flow_without_end_node_completes(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ActionNode(id="a", action_kind="buy_shares", params={"count": 1})],
            edges=[FlowEdge("s", "a")],
        )
        result = execute_strategy_flow(flow, make_context(UP))
        assert result.status == FLOW_COMPLETED
        assert len(result.final_actions) == 1

    def test_unexecuted_action_not_in_final_actions(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ActionNode(id="a", action_kind="sell_all")],
            edges=[FlowEdge("s", "a")],
        )
        result = execute_strategy_flow(flow, make_context(UP))
        assert result.status == FLOW_COMPLETED
        assert result.node_results[1].result["executed"] is False
        assert result.final_actions == []

    def test_cycle_fails(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ActionNode(id="a", action_kind="hold")],
            edges=[FlowEdge("s", "a"), FlowEdge("a", "a")],
        )
        result = FlowRunner(flow, make_context(UP)).run()
        assert result.status == FLOW_FAILED
        assert "环路" in result.error
        assert result.node_results == []

    def test_long_chain_completes(self):
        flow = hold_chain(250)
        result = execute_strategy_flow(flow, make_context(UP))
        assert result.status == FLOW_COMPLETED
        assert len(result.node_results) == 251
        assert result.node_results[-1].node_id == "n249"

    def test_diamond_chain_runs_every_path(self):
        result = execute_strategy_flow(diamond_chain(7), make_context(UP))
        assert result.status == FLOW_COMPLETED
        assert sum(1 for r in result.node_results if r.node_id == "j6") == 2 ** 7

    def test_depth_first_order(self):
        result = execute_strategy_flow(diamond_chain(1), make_context(UP))
        assert [r.node_id for r in result.node_results] == ["s", "l0", "j0", "r0", "j0"]

    def test_missing_bar_fails(self):
        result = execute_strategy_flow(branching_flow(), FlowContext())
        assert result.status == FLOW_FAILED
        assert result.node_results[-1].node_id == "c"
        assert result.node_results[-1].error

    def test_no_start_node_fails(self):
        flow = StrategyFlow(nodes=[EndNode(id="e")])
        result = execute_strategy_flow(flow, make_context(UP))
        assert result.status == FLOW_FAILED

    def test_schedule_node_stops_when_not_due(self):
        flow = StrategyFlow(
            nodes=[
                StartNode(id="s"),
                ScheduleNode(id="t", schedule_type="daily", execution_time="09:30"),
                ActionNode(id="a", action_kind="hold"),
            ],
            edges=[FlowEdge("s", "t"), FlowEdge("t", "a")],
        )
        context = make_context(UP)
        context.schedule_predicate = lambda node, bar: False
        result = execute_strategy_flow(flow, context)
        schedule = result.node_results[1].result
        assert schedule["should_execute"] is False
        assert result.status == FLOW_COMPLETED
        assert [r.node_id for r in result.node_results] == ["s", "t"]

    def test_schedule_node_continues_when_due(self):
        flow = StrategyFlow(
            nodes=[
                StartNode(id="s"),
                ScheduleNode(id="t", schedule_type="daily", execution_time="09:30"),
                ActionNode(id="a", action_kind="hold"),
            ],
            edges=[FlowEdge("s", "t"), FlowEdge("t", "a")],
        )
        context = make_context(UP)
        context.schedule_predicate = lambda node, bar: True
        result = execute_strategy_flow(flow, context)
        assert [r.node_id for r in result.node_results] == ["s", "t", "a"]
        # 未设置判定函数时视为到期
        result = execute_strategy_flow(flow, make_context(UP))
        assert [r.node_id for r in result.node_results] == ["s", "t", "a"]

    def test_execution_ids_unique(self):
        flow = branching_flow()
        r1 = execute_strategy_flow(flow, make_context(UP))
        r2 = execute_strategy_flow(flow, make_context(UP))
        assert r1.execution_id != r2.execution_id
        assert r1.flow_id == "flow-1"


class TestValidateFlow:

    def test_valid(self):
        validate_flow(branching_flow())

    def test_requires_single_start(self):
        flow = StrategyFlow(nodes=[StartNode(id="s1"), StartNode(id="s2")])
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)
        with pytest.raises(StrategyValidationError):
            validate_flow(StrategyFlow(nodes=[EndNode(id="e")]))

    def test_edge_to_unknown_node(self):
        flow = StrategyFlow(nodes=[StartNode(id="s")], edges=[FlowEdge("s", "ghost")])
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_invalid_branch_tag(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ConditionNode(id="c")],
            edges=[FlowEdge("s", "c", branch="maybe")],
        )
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_duplicate_branch(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ConditionNode(id="c"), EndNode(id="e1"), EndNode(id="e2")],
            edges=[FlowEdge("s", "c"), FlowEdge("c", "e1", branch="true"), FlowEdge("c", "e2", branch="true")],
        )
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_unknown_condition_kind(self):
        flow = StrategyFlow(nodes=[StartNode(id="s"), ConditionNode(id="c", condition_kind="moon_phase")])
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_flow_only_actions_allowed(self):
        flow = StrategyFlow(nodes=[
            StartNode(id="s"),
            ActionNode(id="a1", action_kind="exit_all"),
            ActionNode(id="a2", action_kind="alert"),
        ])
        validate_flow(flow)

    def test_unknown_action_kind(self):
        flow = StrategyFlow(nodes=[StartNode(id="s"), ActionNode(id="a", action_kind="teleport")])
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_cycle_rejected(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ConditionNode(id="c", condition_kind="always"),
                   ActionNode(id="a", action_kind="hold")],
            edges=[FlowEdge("s", "c"), FlowEdge("c", "a"), FlowEdge("a", "c")],
        )
        assert has_cycle(flow)
        with pytest.raises(StrategyValidationError, match="cycle"):
            validate_flow(flow)

    def test_self_loop_rejected(self):
        flow = StrategyFlow(
            nodes=[StartNode(id="s"), ActionNode(id="a", action_kind="hold")],
            edges=[FlowEdge("s", "a"), FlowEdge("a", "a")],
        )
        with pytest.raises(StrategyValidationError):
            validate_flow(flow)

    def test_acyclic_graphs_accepted(self):
        assert not has_cycle(hold_chain(250))
        assert not has_cycle(diamond_chain(7))
        validate_flow(hold_chain(250))
        validate_flow(diamond_chain(7))


class TestFlowFromDict:

    def test_editor_format(self):
        flow = flow_from_dict({
            "id": "f1",
            "name": "测试流程",
            "nodes": [
                {"id": "1", "data": {"type": "start", "label": "开始"}},
                {"id": "2", "data": {"type": "condition", "conditionType": "close_price_change",
                                     "conditionParams": {"priceChangePercent": 5}}},
                {"id": "3", "data": {"type": "action", "actionType": "buy_shares",
                                     "actionParams": {"shareCount": 10}}},
                {"id": "4", "data": {"type": "schedule", "scheduleParams": {"scheduleType": "interval",
                                                                            "intervalMinutes": 30}}},
            ],
            "edges": [
                {"id": "e1", "source": "1", "target": "2"},
                {"id": "e2", "source": "2", "target": "3", "sourceHandle": "true"},
                {"id": "e3", "source": "2", "target": "4", "sourceHandle": "bottom"},
            ],
        })
        assert flow.id == "f1"
        assert isinstance(flow.get_node("1"), StartNode)
        assert flow.get_node("1").label == "开始"
        assert flow.get_node("2").params == {"threshold_percent": 5}
        assert flow.get_node("3").params == {"count": 10}
        assert flow.get_node("4").interval_minutes == 30
        assert [e.branch for e in flow.edges] == [None, "true", None]
        validate_flow(flow)

    def test_unknown_node_type(self):
        with pytest.raises(StrategyValidationError):
            flow_from_dict({"nodes": [{"id": "x", "data": {"type": "portal"}}]})

"""
规则策略定义

策略由有序的条件块/动作块组成。按顺序，条件块之后、下一个条件块之前的动作块
属于该条件，构成一条规则（"若条件成立，则依次执行这些动作"）。
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from strategylab.errors import StrategyValidationError
from .actions import ACTION_KINDS, FORMULA_ACTION_KINDS
from .conditions import CONDITION_KINDS, DIRECTIONS, RANGE_DIRECTIONS, RANGE_FIELDS, RANGE_OPERATORS
from .formula import validate_formula

logger = logging.getLogger(__name__)

CONDITION = "condition"
ACTION = "action"

# 编辑器 JSON 字段名 -> 参数名
PARAM_ALIASES = {
    "priceChangePercent": "threshold_percent",
    "thresholdPercent": "threshold_percent",
    "priceChangeDirection": "direction",
    "rangeDirection": "direction",
    "rangeOperator": "range_operator",
    "minPercent": "min_percent",
    "maxPercent": "max_percent",
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "percentCash": "percent",
    "percentStock": "percent",
    "fixedAmount": "amount",
    "shareCount": "count",
}


@dataclass
class RuleBlock:
    """条件块或动作块"""
    id: str
    kind: str  # condition / action
    enabled: bool = True
    condition_kind: Optional[str] = None
    condition_params: Dict[str, Any] = field(default_factory=dict)
    action_kind: Optional[str] = None
    action_params: Dict[str, Any] = field(default_factory=dict)
    name: str = ""

    @property
    def is_condition(self) -> bool:
        return self.kind == CONDITION


@dataclass
class Rule:
    """一条规则：条件 + 其后的动作列表"""
    condition: RuleBlock
    actions: List[RuleBlock] = field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return self.condition.enabled


@dataclass
class Strategy:
    """规则策略：块集合 + 执行顺序"""
    blocks: List[RuleBlock] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    name: str = ""

    def get_block(self, block_id: str) -> RuleBlock:
        for block in self.blocks:
            if block.id == block_id:
                return block
        raise StrategyValidationError(f"Unknown block: {block_id}", block_id=block_id)


def normalize_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """把编辑器的驼峰字段名转换为参数名"""
    return {PARAM_ALIASES.get(k, k): v for k, v in (params or {}).items()}


def validate_condition(kind: Optional[str], params: Optional[Dict[str, Any]] = None,
                       block_id: Optional[str] = None):
    if kind not in CONDITION_KINDS:
        raise StrategyValidationError(f"Unknown condition kind: {kind}", block_id=block_id)

    params = params or {}
    direction = params.get("direction")
    allowed = RANGE_DIRECTIONS if kind in RANGE_FIELDS else DIRECTIONS
    if direction and direction not in allowed:
        raise StrategyValidationError(f"Invalid direction for {kind}: {direction}", block_id=block_id)
    operator = params.get("range_operator")
    if operator and operator not in RANGE_OPERATORS:
        raise StrategyValidationError(f"Invalid range operator: {operator}", block_id=block_id)


def validate_action(kind: Optional[str], params: Dict[str, Any],
                    block_id: Optional[str] = None, allowed=ACTION_KINDS):
    if kind not in allowed:
        raise StrategyValidationError(f"Unknown action kind: {kind}", block_id=block_id)
    if kind in FORMULA_ACTION_KINDS:
        result = validate_formula(params.get("formula") or "")
        if not result.is_valid:
            raise StrategyValidationError(
                f"Invalid formula in block {block_id}: {result.error}", block_id=block_id,
            )


def validate_strategy(strategy: Strategy):
    """
    运行前校验整个策略

    Raises:
        StrategyValidationError: 顺序不是块 ID 的排列、块类型未知、公式无效
    """
    ids = [b.id for b in strategy.blocks]
    if len(set(ids)) != len(ids):
        raise StrategyValidationError("Duplicate block ids")
    if sorted(ids) != sorted(strategy.order):
        raise StrategyValidationError("Block order must be a permutation of block ids")

    for block in strategy.blocks:
        if block.kind == CONDITION:
            validate_condition(block.condition_kind, block.condition_params, block.id)
        elif block.kind == ACTION:
            validate_action(block.action_kind, block.action_params, block.id)
        else:
            raise StrategyValidationError(f"Unknown block type: {block.kind}", block_id=block.id)


def compile_rules(strategy: Strategy) -> List[Rule]:
    """
    按执行顺序把块分组为规则

    第一个条件块之前的动作块不属于任何规则，被忽略；
    已禁用的动作块不加入规则。
    """
    rules: List[Rule] = []
    current: Optional[Rule] = None

    for block_id in strategy.order:
        block = strategy.get_block(block_id)
        if block.is_condition:
            current = Rule(condition=block)
            rules.append(current)
        elif current is None:
            logger.warning(f"动作块 {block.id} 之前没有条件块，已忽略")
        elif block.enabled:
            current.actions.append(block)

    return rules


def strategy_from_dict(payload: Dict[str, Any]) -> Strategy:
    """
    从 JSON 结构构造策略

    支持 {"blocks": [...], "order": [...]}，兼容编辑器的 type/conditionType/
    conditionParams/actionType/actionParams/blockOrder 字段。
    """
    blocks = []
    for raw in payload.get("blocks", []):
        blocks.append(RuleBlock(
            id=str(raw["id"]),
            kind=raw.get("kind") or raw.get("type"),
            enabled=raw.get("enabled", True),
            condition_kind=raw.get("condition_kind") or raw.get("conditionType"),
            condition_params=normalize_params(raw.get("condition_params") or raw.get("conditionParams")),
            action_kind=raw.get("action_kind") or raw.get("actionType"),
            action_params=normalize_params(raw.get("action_params") or raw.get("actionParams")),
            name=raw.get("name", ""),
        ))
    order = payload.get("order") or payload.get("blockOrder") or [b.id for b in blocks]
    return Strategy(blocks=blocks, order=[str(i) for i in order], name=payload.get("name", ""))

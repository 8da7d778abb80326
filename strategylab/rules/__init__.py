"""策略规则：公式、条件、动作、规则定义"""

from .formula import (
    FormulaResult,
    FORMULA_EXAMPLES,
    parse_formula,
    evaluate_formula,
    calculate_formula,
    validate_formula,
)
from .conditions import CONDITION_KINDS, evaluate_condition, price_change_percent
from .actions import (
    ACTION_KINDS,
    FLOW_ONLY_ACTION_KINDS,
    FORMULA_ACTION_KINDS,
    action_direction,
    execute_action,
    fill_price,
)
from .strategy import (
    Rule,
    RuleBlock,
    Strategy,
    compile_rules,
    strategy_from_dict,
    validate_strategy,
)

__all__ = [
    # 公式
    "FormulaResult",
    "FORMULA_EXAMPLES",
    "parse_formula",
    "evaluate_formula",
    "calculate_formula",
    "validate_formula",
    # 条件
    "CONDITION_KINDS",
    "evaluate_condition",
    "price_change_percent",
    # 动作
    "ACTION_KINDS",
    "FLOW_ONLY_ACTION_KINDS",
    "FORMULA_ACTION_KINDS",
    "action_direction",
    "execute_action",
    "fill_price",
    # 规则
    "Rule",
    "RuleBlock",
    "Strategy",
    "compile_rules",
    "strategy_from_dict",
    "validate_strategy",
]

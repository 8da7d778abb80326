"""
条件判断

纯函数：根据条件类型、参数、当日与前一日 K 线判断条件是否成立。
"""

import logging
from typing import Any, Dict, Optional

from strategylab.backtest.models import Bar

logger = logging.getLogger(__name__)

ALWAYS = "always"
CLOSE_PRICE_CHANGE = "close_price_change"
HIGH_PRICE_CHANGE = "high_price_change"
LOW_PRICE_CHANGE = "low_price_change"
PRICE_CHANGE_RANGE = "price_change_range"
CLOSE_PRICE_RANGE = "close_price_range"
HIGH_PRICE_RANGE = "high_price_range"
LOW_PRICE_RANGE = "low_price_range"
PRICE_VALUE_RANGE = "price_value_range"

# 涨跌幅条件 -> 比较的价格字段
CHANGE_FIELDS = {
    CLOSE_PRICE_CHANGE: "close",
    HIGH_PRICE_CHANGE: "high",
    LOW_PRICE_CHANGE: "low",
}

RANGE_FIELDS = {
    PRICE_CHANGE_RANGE: "close",
    CLOSE_PRICE_RANGE: "close",
    HIGH_PRICE_RANGE: "high",
    LOW_PRICE_RANGE: "low",
}

CONDITION_KINDS = frozenset(
    [ALWAYS, PRICE_VALUE_RANGE, *CHANGE_FIELDS, *RANGE_FIELDS]
)

DIRECTIONS = ("up", "down")
RANGE_DIRECTIONS = ("up", "down", "both")
RANGE_OPERATORS = ("inclusive", "exclusive", "left_inclusive", "right_inclusive")


def price_change_percent(current: Bar, previous: Bar, field: str = "close") -> Optional[float]:
    """相对前一日的涨跌幅（%），前值为 0 时返回 None"""
    prev_value = getattr(previous, field)
    if prev_value == 0:
        return None
    return (getattr(current, field) - prev_value) / prev_value * 100


def in_range(value: float, low: float, high: float, operator: str = "inclusive") -> bool:
    """按区间运算符判断 value 是否落在 [low, high] 内"""
    if operator == "inclusive":
        return low <= value <= high
    if operator == "exclusive":
        return low < value < high
    if operator == "left_inclusive":
        return low <= value < high
    if operator == "right_inclusive":
        return low < value <= high
    return False


def _change_condition(change: float, params: Dict[str, Any]) -> bool:
    threshold = float(params.get("threshold_percent", 0) or 0)
    direction = params.get("direction", "up") or "up"
    if direction == "up":
        return change >= threshold
    return change <= -threshold


def _range_condition(change: float, params: Dict[str, Any]) -> bool:
    direction = params.get("direction", "up") or "up"
    if direction == "down":
        # 下跌幅度按正数比较
        change = -change
    elif direction == "both":
        change = abs(change)
    return in_range(
        change,
        float(params.get("min_percent", 0) or 0),
        float(params.get("max_percent", 0) or 0),
        params.get("range_operator", "inclusive") or "inclusive",
    )


def evaluate_condition(
    kind: str,
    params: Optional[Dict[str, Any]],
    current: Bar,
    previous: Optional[Bar] = None,
) -> bool:
    """
    判断条件是否成立

    Args:
        kind: 条件类型，见 CONDITION_KINDS
        params: 条件参数
        current: 当日 K 线
        previous: 前一日 K 线，缺失时所有涨跌幅类条件均不成立

    Returns:
        条件是否成立；未知类型视为不成立
    """
    params = params or {}

    if kind == ALWAYS:
        return True

    if kind == PRICE_VALUE_RANGE:
        return in_range(
            current.close,
            float(params.get("min_price", 0) or 0),
            float(params.get("max_price", 0) or 0),
            params.get("range_operator", "inclusive") or "inclusive",
        )

    if kind in CHANGE_FIELDS or kind in RANGE_FIELDS:
        if previous is None:
            return False
        field = CHANGE_FIELDS.get(kind) or RANGE_FIELDS[kind]
        change = price_change_percent(current, previous, field)
        if change is None:
            return False
        if kind in CHANGE_FIELDS:
            return _change_condition(change, params)
        return _range_condition(change, params)

    logger.debug(f"未知条件类型: {kind}")
    return False

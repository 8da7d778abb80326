"""
动作执行

把动作类型 + 参数 + 成交价转换为 0 或 1 笔成交，并记入账本。
所有股数向下取整；资金或持仓不足时跳过该笔交易，不抛异常。
"""

import logging
import math
from typing import Any, Dict, Optional

from strategylab.backtest.models import BUY, SELL, Trade
from strategylab.backtest.portfolio import Portfolio
from .formula import calculate_formula

logger = logging.getLogger(__name__)

BUY_PERCENT_CASH = "buy_percent_cash"
SELL_PERCENT_STOCK = "sell_percent_stock"
BUY_FIXED_AMOUNT = "buy_fixed_amount"
SELL_FIXED_AMOUNT = "sell_fixed_amount"
BUY_SHARES = "buy_shares"
SELL_SHARES = "sell_shares"
SELL_ALL = "sell_all"
BUY_FORMULA_AMOUNT = "buy_formula_amount"
SELL_FORMULA_AMOUNT = "sell_formula_amount"
BUY_FORMULA_SHARES = "buy_formula_shares"
SELL_FORMULA_SHARES = "sell_formula_shares"
BUY_FORMULA_PERCENT = "buy_formula_percent"
SELL_FORMULA_PERCENT = "sell_formula_percent"
HOLD = "hold"

# 仅流程图使用
EXIT_ALL = "exit_all"
ALERT = "alert"
LOG = "log"

FORMULA_ACTION_KINDS = frozenset([
    BUY_FORMULA_AMOUNT, SELL_FORMULA_AMOUNT,
    BUY_FORMULA_SHARES, SELL_FORMULA_SHARES,
    BUY_FORMULA_PERCENT, SELL_FORMULA_PERCENT,
])

ACTION_KINDS = frozenset([
    BUY_PERCENT_CASH, SELL_PERCENT_STOCK,
    BUY_FIXED_AMOUNT, SELL_FIXED_AMOUNT,
    BUY_SHARES, SELL_SHARES, SELL_ALL, HOLD,
]) | FORMULA_ACTION_KINDS

FLOW_ONLY_ACTION_KINDS = frozenset([EXIT_ALL, ALERT, LOG])

# 不产生成交的动作
NOOP_ACTION_KINDS = frozenset([HOLD, ALERT, LOG])


def fill_price(price: float, direction: str, slippage_rate: float = 0.0) -> float:
    """考虑滑点后的成交价：买入上浮、卖出下浮"""
    if direction == BUY:
        return price * (1 + slippage_rate)
    return price * (1 - slippage_rate)


def _buy(portfolio: Portfolio, date: str, quantity: int, price: float,
         commission: float) -> Optional[Trade]:
    if quantity <= 0:
        return None
    if quantity * price + commission > portfolio.cash:
        logger.debug(f"{date} 现金不足，跳过买入 {quantity} 股")
        return None
    return portfolio.apply_buy(date, quantity, price, commission)


def _sell(portfolio: Portfolio, date: str, quantity: int, price: float,
          commission_rate: float) -> Optional[Trade]:
    if quantity <= 0:
        return None
    if quantity > portfolio.shares:
        logger.debug(f"{date} 持仓不足，跳过卖出 {quantity} 股")
        return None
    return portfolio.apply_sell(date, quantity, price, quantity * price * commission_rate)


def _buy_amount(portfolio: Portfolio, date: str, amount: float, price: float,
                commission_rate: float) -> Optional[Trade]:
    """按金额买入，手续费从金额中扣除"""
    if amount <= 0 or amount > portfolio.cash:
        return None
    commission = amount * commission_rate
    quantity = math.floor((amount - commission) / price)
    return _buy(portfolio, date, quantity, price, commission)


def _buy_shares(portfolio: Portfolio, date: str, quantity: int, price: float,
                commission_rate: float) -> Optional[Trade]:
    return _buy(portfolio, date, quantity, price, quantity * price * commission_rate)


def _buy_percent(portfolio: Portfolio, date: str, percent: float, price: float,
                 commission_rate: float) -> Optional[Trade]:
    return _buy_amount(portfolio, date, portfolio.cash * percent / 100, price, commission_rate)


def _sell_amount(portfolio: Portfolio, date: str, amount: float, price: float,
                 commission_rate: float) -> Optional[Trade]:
    return _sell(portfolio, date, math.floor(amount / price), price, commission_rate)


def _sell_shares(portfolio: Portfolio, date: str, quantity: int, price: float,
                 commission_rate: float) -> Optional[Trade]:
    return _sell(portfolio, date, quantity, price, commission_rate)


def _sell_percent(portfolio: Portfolio, date: str, percent: float, price: float,
                  commission_rate: float) -> Optional[Trade]:
    return _sell(portfolio, date, math.floor(portfolio.shares * percent / 100), price, commission_rate)


# 公式动作 -> (执行函数, 结果是否为百分比)
_FORMULA_HANDLERS: Dict[str, tuple] = {
    BUY_FORMULA_AMOUNT: (_buy_amount, False),
    SELL_FORMULA_AMOUNT: (_sell_amount, False),
    BUY_FORMULA_SHARES: (_buy_shares, False),
    SELL_FORMULA_SHARES: (_sell_shares, False),
    BUY_FORMULA_PERCENT: (_buy_percent, True),
    SELL_FORMULA_PERCENT: (_sell_percent, True),
}


def action_direction(kind: str) -> Optional[str]:
    """动作的买卖方向，不产生成交的动作返回 None"""
    if kind.startswith("buy_"):
        return BUY
    if kind.startswith("sell_") or kind == EXIT_ALL:
        return SELL
    return None


def execute_action(
    kind: str,
    params: Optional[Dict[str, Any]],
    price: float,
    commission_rate: float,
    portfolio: Portfolio,
    date: str,
    change_percent: float = 0.0,
) -> Optional[Trade]:
    """
    执行单个动作

    Args:
        kind: 动作类型，见 ACTION_KINDS
        params: 动作参数（percent / amount / count / formula）
        price: 成交价（已含滑点）
        commission_rate: 手续费率
        portfolio: 账本，成交时被修改
        date: 交易日期
        change_percent: 当日收盘涨跌幅，作为公式变量 N

    Returns:
        成交记录；未成交返回 None
    """
    params = params or {}
    if price <= 0:
        return None

    if kind == BUY_PERCENT_CASH:
        return _buy_percent(portfolio, date, float(params.get("percent", 0) or 0), price, commission_rate)
    if kind == SELL_PERCENT_STOCK:
        return _sell_percent(portfolio, date, float(params.get("percent", 0) or 0), price, commission_rate)
    if kind == BUY_FIXED_AMOUNT:
        return _buy_amount(portfolio, date, float(params.get("amount", 0) or 0), price, commission_rate)
    if kind == SELL_FIXED_AMOUNT:
        return _sell_amount(portfolio, date, float(params.get("amount", 0) or 0), price, commission_rate)
    if kind == BUY_SHARES:
        return _buy_shares(portfolio, date, int(params.get("count", 0) or 0), price, commission_rate)
    if kind == SELL_SHARES:
        return _sell_shares(portfolio, date, int(params.get("count", 0) or 0), price, commission_rate)
    if kind in (SELL_ALL, EXIT_ALL):
        return _sell(portfolio, date, portfolio.shares, price, commission_rate)

    if kind in _FORMULA_HANDLERS:
        formula = params.get("formula") or ""
        result = calculate_formula(formula, change_percent)
        if not result.is_valid:
            logger.debug(f"{date} 公式无效，跳过 {kind}: {result.error}")
            return None
        if result.value <= 0:
            return None
        handler, is_percent = _FORMULA_HANDLERS[kind]
        value = min(100.0, result.value) if is_percent else result.value
        if kind in (BUY_FORMULA_SHARES, SELL_FORMULA_SHARES):
            value = math.floor(value)
        return handler(portfolio, date, value, price, commission_rate)

    if kind not in NOOP_ACTION_KINDS:
        logger.debug(f"未知动作类型: {kind}")
    return None



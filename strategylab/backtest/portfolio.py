"""仓位管理：现金、单一持仓、成交记录、快照"""

from typing import List, Optional

from .models import (
    BUY, SELL, Position, PortfolioSnapshot, PositionSnapshot, Trade,
)


class Portfolio:
    """
    组合账本

    只负责记账，不做任何校验；买卖前的资金/持仓检查由动作执行器完成。
    """

    def __init__(self, initial_cash: float, symbol: str = ""):
        self.initial_cash = initial_cash
        self.symbol = symbol
        self.cash = initial_cash
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []

    @classmethod
    def with_holdings(cls, cash: float, shares: int = 0, avg_price: float = 0.0,
                      symbol: str = "") -> "Portfolio":
        """按给定现金/持仓构造账本（流程图描述动作结果时使用）"""
        portfolio = cls(cash, symbol)
        if shares > 0:
            portfolio.position = Position(symbol=symbol, quantity=shares, avg_price=avg_price)
        return portfolio

    @property
    def shares(self) -> int:
        return self.position.quantity if self.position else 0

    def has_position(self) -> bool:
        return self.position is not None

    def _next_trade_id(self) -> str:
        return f"T{len(self.trades) + 1:06d}"

    def apply_buy(self, date: str, quantity: int, price: float, commission: float) -> Trade:
        """买入，重新计算加权平均成本"""
        trade = Trade(
            id=self._next_trade_id(), date=date, direction=BUY,
            symbol=self.symbol, quantity=quantity, price=price,
            commission=commission,
        )
        self.trades.append(trade)
        self.cash -= trade.net_amount

        held = self.shares
        avg = self.position.avg_price if self.position else 0.0
        new_quantity = held + quantity
        self.position = Position(
            symbol=self.symbol,
            quantity=new_quantity,
            avg_price=(held * avg + quantity * price) / new_quantity,
        )
        return trade

    def apply_sell(self, date: str, quantity: int, price: float, commission: float) -> Trade:
        """卖出，持仓归零时移除"""
        trade = Trade(
            id=self._next_trade_id(), date=date, direction=SELL,
            symbol=self.symbol, quantity=quantity, price=price,
            commission=commission,
        )
        self.trades.append(trade)
        self.cash += trade.net_amount

        remaining = self.shares - quantity
        if remaining <= 0:
            self.position = None
        else:
            self.position.quantity = remaining
        return trade

    def get_nav(self, current_price: float) -> float:
        """当前净值"""
        return self.cash + self.shares * current_price

    def snapshot(self, date: str, current_price: float) -> PortfolioSnapshot:
        """按收盘价生成组合快照"""
        position = None
        if self.position:
            market_value = self.position.quantity * current_price
            position = PositionSnapshot(
                symbol=self.position.symbol,
                quantity=self.position.quantity,
                avg_price=self.position.avg_price,
                current_price=current_price,
                market_value=market_value,
                unrealized_pnl=(current_price - self.position.avg_price) * self.position.quantity,
            )

        total_value = self.cash + (position.market_value if position else 0.0)
        total_return = total_value - self.initial_cash
        return_pct = total_return / self.initial_cash * 100 if self.initial_cash > 0 else 0.0
        return PortfolioSnapshot(
            date=date,
            cash=self.cash,
            position=position,
            total_value=total_value,
            total_return=total_return,
            total_return_pct=return_pct,
        )

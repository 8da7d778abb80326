"""回测数据模型"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from strategylab.errors import ConfigError
from strategylab.settings import DEFAULTS

DATE_FORMAT = "%Y-%m-%d"

BUY = "buy"
SELL = "sell"

# 进度状态
STATUS_PREPARING = "preparing"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

# 回测结果状态
RESULT_COMPLETED = "completed"
RESULT_CANCELLED = "cancelled"


@dataclass(frozen=True)
class Bar:
    """单日 K 线"""
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    adj_close: Optional[float] = None


@dataclass
class BacktestConfig:
    """回测配置"""
    symbol: str
    start_date: str
    end_date: str
    initial_cash: float = DEFAULTS["initial_cash"]
    commission_rate: float = DEFAULTS["commission_rate"]
    slippage_rate: float = DEFAULTS["slippage_rate"]

    def __post_init__(self):
        if self.initial_cash <= 0:
            raise ConfigError(f"initial_cash must be positive: {self.initial_cash}")
        if self.commission_rate < 0:
            raise ConfigError(f"commission_rate must be >= 0: {self.commission_rate}")
        if self.slippage_rate < 0:
            raise ConfigError(f"slippage_rate must be >= 0: {self.slippage_rate}")
        try:
            start = datetime.strptime(self.start_date, DATE_FORMAT)
            end = datetime.strptime(self.end_date, DATE_FORMAT)
        except ValueError as e:
            raise ConfigError(f"Invalid date: {e}") from e
        if start > end:
            raise ConfigError(f"start_date {self.start_date} is after end_date {self.end_date}")

    @property
    def duration_days(self) -> int:
        """回测区间的自然日天数"""
        d1 = datetime.strptime(self.start_date, DATE_FORMAT)
        d2 = datetime.strptime(self.end_date, DATE_FORMAT)
        return max((d2 - d1).days, 0)


@dataclass
class Position:
    """持仓（单一标的）"""
    symbol: str
    quantity: int
    avg_price: float


@dataclass(frozen=True)
class Trade:
    """成交记录"""
    id: str
    date: str
    direction: str  # buy / sell
    symbol: str
    quantity: int
    price: float
    commission: float

    @property
    def gross_amount(self) -> float:
        return self.quantity * self.price

    @property
    def net_amount(self) -> float:
        """对现金的实际影响金额（买入含手续费，卖出扣手续费）"""
        if self.direction == BUY:
            return self.gross_amount + self.commission
        return self.gross_amount - self.commission

    @property
    def is_buy(self) -> bool:
        return self.direction == BUY


@dataclass(frozen=True)
class PositionSnapshot:
    """快照时点的持仓"""
    symbol: str
    quantity: int
    avg_price: float
    current_price: float
    market_value: float
    unrealized_pnl: float


@dataclass(frozen=True)
class PortfolioSnapshot:
    """组合快照"""
    date: str
    cash: float
    position: Optional[PositionSnapshot]
    total_value: float
    total_return: float
    total_return_pct: float


@dataclass
class BacktestStats:
    """回测统计指标（百分比字段单位为 %）"""
    total_return: float = 0.0
    total_return_pct: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration_days: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    total_trades: int = 0
    avg_trade_return: float = 0.0


@dataclass
class BacktestResult:
    """回测结果"""
    config: BacktestConfig
    trades: List[Trade] = field(default_factory=list)
    portfolio_history: List[PortfolioSnapshot] = field(default_factory=list)
    stats: BacktestStats = field(default_factory=BacktestStats)
    start_date: str = ""
    end_date: str = ""
    duration_days: int = 0
    execution_time_ms: float = 0.0
    status: str = RESULT_COMPLETED

    @property
    def final_value(self) -> float:
        if not self.portfolio_history:
            return self.config.initial_cash
        return self.portfolio_history[-1].total_value

"""回测核心的异常类型"""

from typing import Optional


class BacktestError(Exception):
    """回测相关错误的基类"""


class ConfigError(BacktestError, ValueError):
    """回测配置不合法"""


class StrategyValidationError(BacktestError, ValueError):
    """策略定义不合法（未知条件/动作类型、顺序不一致等）"""

    def __init__(self, message: str, block_id: Optional[str] = None):
        super().__init__(message)
        self.block_id = block_id


class FormulaError(BacktestError, ValueError):
    """公式解析或计算失败"""

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class NoDataError(BacktestError):
    """指定区间内没有行情数据"""


class FlowExecutionError(BacktestError):
    """流程图执行失败"""

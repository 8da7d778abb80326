"""多组配置对比：同一策略、同一行情，分别跑回测"""

import logging
from typing import List, Sequence, Union

import pandas as pd

from strategylab.flow.graph import StrategyFlow
from strategylab.rules.strategy import Strategy
from .engine import BacktestEngine
from .models import BacktestConfig, BacktestResult, Bar

logger = logging.getLogger(__name__)


def compare_configs(
    bars: Union[Sequence[Bar], pd.DataFrame],
    strategy: Union[Strategy, StrategyFlow],
    configs: Sequence[BacktestConfig],
) -> List[BacktestResult]:
    """
    每组配置各用一个引擎和账本运行，结果按配置顺序返回

    Args:
        bars: 行情（K 线列表或 DataFrame）
        strategy: 规则策略或流程图
        configs: 回测配置列表
    """
    results = []
    for i, config in enumerate(configs):
        logger.info(
            f"[{i + 1}/{len(configs)}] 资金={config.initial_cash:,.0f}, "
            f"手续费={config.commission_rate}, 滑点={config.slippage_rate}"
        )
        results.append(BacktestEngine(config, strategy).run(bars))
    return results

"""策略文件加载：规则列表或流程图"""

import json
from pathlib import Path
from typing import Any, Dict, Union

from strategylab.errors import StrategyValidationError
from strategylab.flow.graph import StrategyFlow, flow_from_dict
from strategylab.rules.strategy import Strategy, strategy_from_dict


def strategy_from_payload(payload: Dict[str, Any]) -> Union[Strategy, StrategyFlow]:
    """含 nodes 的按流程图解析，含 blocks 的按规则列表解析"""
    if not isinstance(payload, dict):
        raise StrategyValidationError("策略文件顶层必须是对象")
    if "nodes" in payload:
        return flow_from_dict(payload)
    if "blocks" in payload:
        return strategy_from_dict(payload)
    raise StrategyValidationError("策略文件缺少 blocks 或 nodes")


def load_strategy_file(path: Union[str, Path]) -> Union[Strategy, StrategyFlow]:
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    return strategy_from_payload(payload)

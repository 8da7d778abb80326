"""
默认参数

所有可调默认值的统一入口，可通过环境变量覆盖：
STRATEGYLAB_<KEY>，如 STRATEGYLAB_COMMISSION_RATE=0.001
"""

import os
from typing import Any, Dict

ENV_PREFIX = "STRATEGYLAB_"

DEFAULTS: Dict[str, Any] = {
    "initial_cash": 10_000_000.0,  # 初始资金
    "commission_rate": 0.0015,     # 手续费率 0.15%
    "slippage_rate": 0.001,        # 滑点率 0.1%
    "snapshot_interval": 5,        # 每隔多少根 K 线记录一次组合快照
    "cache_ttl_seconds": 300,      # 行情缓存有效期
    "data_dir": "data/stocks",     # JSON 行情目录
}


def _convert(raw: str, default: Any) -> Any:
    """按默认值的类型转换环境变量"""
    # bool 必须先于 int 判断
    if isinstance(default, bool):
        return raw.lower() in ("true", "1", "yes")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def get_setting(key: str) -> Any:
    """获取单个参数（环境变量优先）"""
    if key not in DEFAULTS:
        raise ValueError(f"Unknown setting: {key}")
    default = DEFAULTS[key]
    env_value = os.environ.get(ENV_PREFIX + key.upper())
    if env_value is None:
        return default
    return _convert(env_value, default)


def load_settings() -> Dict[str, Any]:
    """获取全部参数"""
    return {key: get_setting(key) for key in DEFAULTS}

"""告警状态存储模块"""

from typing import Dict, Any, Optional

from .base import BaseAlertStateStore
from .memory_store import MemoryAlertStateStore
from .redis_store import RedisAlertStateStore
from ..utils.exceptions import ConfigError

STORE_TYPES = {
    'memory': MemoryAlertStateStore,
    'redis': RedisAlertStateStore,
}


def create_state_store(store_config: Optional[Dict[str, Any]] = None) -> BaseAlertStateStore:
    """
    根据配置创建状态存储

    Raises:
        ConfigError: 不支持的存储类型
    """
    store_config = store_config or {}
    store_type = store_config.get('type', 'memory')
    if store_type not in STORE_TYPES:
        raise ConfigError(f"不支持的状态存储类型: '{store_type}'")
    return STORE_TYPES[store_type](store_config)


__all__ = ['BaseAlertStateStore', 'MemoryAlertStateStore', 'RedisAlertStateStore',
           'create_state_store']

"""告警状态存储基类"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional, Callable, Awaitable, TypeVar

from ..utils.exceptions import ErrorCode, StateStoreError
from ..utils.log_manager import get_logger

T = TypeVar('T')


class BaseAlertStateStore(ABC):
    """告警状态存储抽象基类

    公共方法都是尽力而为的：任何后端异常或超时都只记录日志，并退化为
    "标记不存在" / "运行锁未被占用"，从不让一次扫描失败。
    子类只需实现以下划线开头的后端原语。
    """

    DOWN_FLAG_PREFIX = 'alert:down'
    RUN_LOCK_KEY = 'last-health-check-run'
    LAST_CHECK_KEY = 'last_check'

    DEFAULT_OPERATION_TIMEOUT = 2.0
    DEFAULT_LOCK_WINDOW = 480  # 8分钟内的重复触发被跳过
    DEFAULT_LOCK_TTL = 600

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 clock: Callable[[], float] = time.time):
        """
        初始化状态存储

        Args:
            config: state_store 配置
            clock: 返回当前epoch秒的时钟函数
        """
        self.config = config or {}
        self.clock = clock
        self.operation_timeout = self.config.get('operation_timeout',
                                                 self.DEFAULT_OPERATION_TIMEOUT)
        self.lock_window = self.config.get('lock_window', self.DEFAULT_LOCK_WINDOW)
        self.lock_ttl = self.config.get('lock_ttl', self.DEFAULT_LOCK_TTL)
        self.store_type = self.__class__.__name__.replace('AlertStateStore', '').lower()
        self.logger = get_logger(f'store.{self.store_type}')

    @classmethod
    def down_flag_key(cls, service_name: str, env_name: str) -> str:
        return f'{cls.DOWN_FLAG_PREFIX}:{service_name}:{env_name}'

    async def try_acquire_run_lock(self) -> bool:
        """
        原子地检查并记录本次扫描的开始时间

        Returns:
            bool: True 表示可以继续扫描，False 表示与最近一次扫描重叠应跳过
        """
        acquired = await self._guard(
            'try_acquire_run_lock', self._acquire_run_lock(self.clock()), default=True)
        if not acquired:
            self.logger.info(f"最近 {self.lock_window} 秒内已有扫描运行，本次跳过")
        return acquired

    async def has_down_flag(self, service_name: str, env_name: str) -> bool:
        key = self.down_flag_key(service_name, env_name)
        return await self._guard('has_down_flag', self._has_down_flag(key), default=False)

    async def set_down_flag(self, service_name: str, env_name: str, ttl_seconds: int) -> None:
        key = self.down_flag_key(service_name, env_name)
        await self._guard('set_down_flag', self._set_down_flag(key, int(ttl_seconds)),
                          default=None)

    async def clear_down_flag(self, service_name: str, env_name: str) -> None:
        key = self.down_flag_key(service_name, env_name)
        await self._guard('clear_down_flag', self._clear_down_flag(key), default=None)

    async def record_last_scan_timestamp(self, timestamp: datetime) -> None:
        """记录最近一次扫描完成时间，仅用于外部观测"""
        await self._guard('record_last_scan_timestamp',
                          self._record_last_check(timestamp.isoformat()), default=None)

    async def _guard(self, operation: str, coro: Awaitable[T], default: T) -> T:
        """执行后端操作，超时或异常时返回默认值"""
        try:
            return await asyncio.wait_for(coro, timeout=self.operation_timeout)
        except asyncio.TimeoutError as e:
            error = StateStoreError(
                f"状态存储操作超时 ({self.operation_timeout}s)，按无效果处理",
                ErrorCode.STATE_STORE_TIMEOUT, operation=operation, cause=e)
        except Exception as e:
            error = StateStoreError("状态存储操作失败，按无效果处理",
                                    ErrorCode.STATE_STORE_UNAVAILABLE,
                                    operation=operation, cause=e)
        self.logger.error(error.format_error())
        return default

    @abstractmethod
    async def _acquire_run_lock(self, now: float) -> bool:
        """超过 lock_window 或不存在时写入 now（TTL 为 lock_ttl）并返回 True"""
        pass

    @abstractmethod
    async def _has_down_flag(self, key: str) -> bool:
        pass

    @abstractmethod
    async def _set_down_flag(self, key: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def _clear_down_flag(self, key: str) -> None:
        pass

    @abstractmethod
    async def _record_last_check(self, value: str) -> None:
        pass

    async def close(self):
        """释放后端连接"""
        pass

"""进程内告警状态存储"""

from typing import Dict, Any, Optional, Tuple, Callable
import time

from .base import BaseAlertStateStore


class MemoryAlertStateStore(BaseAlertStateStore):
    """基于字典的状态存储，支持TTL

    只在单进程内去重，未配置共享存储时使用。
    原语内部没有 await，因此在事件循环中天然是原子的。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _set(self, key: str, value: str, ttl_seconds: Optional[float] = None):
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def _acquire_run_lock(self, now: float) -> bool:
        last = self._get(self.RUN_LOCK_KEY)
        if last is not None and now - float(last) < self.lock_window:
            return False

        self._set(self.RUN_LOCK_KEY, repr(now), self.lock_ttl)
        return True

    async def _has_down_flag(self, key: str) -> bool:
        return self._get(key) == 'true'

    async def _set_down_flag(self, key: str, ttl_seconds: int) -> None:
        self._set(key, 'true', ttl_seconds)

    async def _clear_down_flag(self, key: str) -> None:
        self._data.pop(key, None)

    async def _record_last_check(self, value: str) -> None:
        self._set(self.LAST_CHECK_KEY, value)

    def get_last_check(self) -> Optional[str]:
        return self._get(self.LAST_CHECK_KEY)

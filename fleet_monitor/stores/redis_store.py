"""基于Redis的告警状态存储"""

import time
from typing import Dict, Any, Optional, Callable

import redis.asyncio as redis

from .base import BaseAlertStateStore


class RedisAlertStateStore(BaseAlertStateStore):
    """Redis告警状态存储

    多个扫描进程共享同一个Redis时，运行锁通过Lua脚本在服务端原子地检查并写入。
    """

    RUN_LOCK_SCRIPT = """
local last = tonumber(redis.call('GET', KEYS[1]))
if last and (tonumber(ARGV[1]) - last) < tonumber(ARGV[2]) then
    return 0
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[3])
return 1
"""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 client: Optional[redis.Redis] = None,
                 clock: Callable[[], float] = time.time):
        """
        初始化Redis状态存储

        Args:
            config: state_store 配置，支持 url 或 host/port/database/password
            client: 已创建的Redis客户端，None 时按配置延迟创建
            clock: 时钟函数
        """
        super().__init__(config, clock)
        self._client = client
        self._run_lock_script = None

    def _get_client(self) -> redis.Redis:
        """
        获取Redis客户端实例

        Returns:
            redis.Redis: Redis客户端
        """
        if self._client is None:
            timeout = self.operation_timeout
            url = self.config.get('url')
            if url:
                self._client = redis.Redis.from_url(
                    url,
                    socket_timeout=timeout,
                    socket_connect_timeout=timeout,
                    decode_responses=True
                )
            else:
                self._client = redis.Redis(
                    host=self.config.get('host', 'localhost'),
                    port=self.config.get('port', 6379),
                    db=self.config.get('database', 0),
                    password=self.config.get('password'),
                    socket_timeout=timeout,
                    socket_connect_timeout=timeout,
                    decode_responses=True
                )
            self.logger.debug("Redis客户端已创建")
        return self._client

    async def _acquire_run_lock(self, now: float) -> bool:
        client = self._get_client()
        if self._run_lock_script is None:
            self._run_lock_script = client.register_script(self.RUN_LOCK_SCRIPT)

        result = await self._run_lock_script(
            keys=[self.RUN_LOCK_KEY],
            args=[f'{now:.3f}', self.lock_window, int(self.lock_ttl)]
        )
        return int(result) == 1

    async def _has_down_flag(self, key: str) -> bool:
        value = await self._get_client().get(key)
        return value == 'true'

    async def _set_down_flag(self, key: str, ttl_seconds: int) -> None:
        await self._get_client().set(key, 'true', ex=ttl_seconds)

    async def _clear_down_flag(self, key: str) -> None:
        await self._get_client().delete(key)

    async def _record_last_check(self, value: str) -> None:
        await self._get_client().set(self.LAST_CHECK_KEY, value)

    async def close(self):
        """关闭Redis连接"""
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                self.logger.warning(f"关闭Redis客户端连接时出错: {e}")
            self._client = None
            self._run_lock_script = None

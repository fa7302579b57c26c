"""进程内告警状态存储测试"""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from fleet_monitor.stores import create_state_store
from fleet_monitor.stores.memory_store import MemoryAlertStateStore
from fleet_monitor.stores.redis_store import RedisAlertStateStore
from fleet_monitor.utils.exceptions import ConfigError


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestMemoryAlertStateStore:
    """进程内状态存储测试类"""

    def setup_method(self):
        """测试前准备"""
        self.clock = FakeClock()
        self.store = MemoryAlertStateStore(clock=self.clock)

    def test_defaults(self):
        """测试默认配置"""
        assert self.store.operation_timeout == 2.0
        assert self.store.lock_window == 480
        assert self.store.lock_ttl == 600
        assert self.store.store_type == 'memory'

    def test_down_flag_key(self):
        """测试DOWN标记键格式"""
        assert MemoryAlertStateStore.down_flag_key('Crop Service', 'Dev1') == \
            'alert:down:Crop Service:Dev1'

    @pytest.mark.asyncio
    async def test_down_flag_lifecycle(self):
        """测试设置、查询和清除DOWN标记"""
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is False

        await self.store.set_down_flag('Crop Service', 'Dev1', 86400)
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is True
        assert await self.store.has_down_flag('Crop Service', 'Prod') is False

        await self.store.clear_down_flag('Crop Service', 'Dev1')
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is False

    @pytest.mark.asyncio
    async def test_clear_missing_flag(self):
        """测试清除不存在的标记"""
        await self.store.clear_down_flag('Crop Service', 'Dev1')
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is False

    @pytest.mark.asyncio
    async def test_down_flag_expires(self):
        """测试DOWN标记按TTL过期"""
        await self.store.set_down_flag('Crop Service', 'Dev1', 86400)

        self.clock.advance(86399)
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is True

        self.clock.advance(1)
        assert await self.store.has_down_flag('Crop Service', 'Dev1') is False

    @pytest.mark.asyncio
    async def test_run_lock_overlap(self):
        """测试锁窗口内的重复触发被拒绝"""
        assert await self.store.try_acquire_run_lock() is True

        self.clock.advance(120)
        assert await self.store.try_acquire_run_lock() is False

        self.clock.advance(361)
        assert await self.store.try_acquire_run_lock() is True

    @pytest.mark.asyncio
    async def test_run_lock_skip_does_not_extend_window(self):
        """测试被跳过的触发不会刷新锁时间"""
        assert await self.store.try_acquire_run_lock() is True

        self.clock.advance(400)
        assert await self.store.try_acquire_run_lock() is False

        self.clock.advance(100)
        assert await self.store.try_acquire_run_lock() is True

    @pytest.mark.asyncio
    async def test_record_last_scan_timestamp(self):
        """测试记录最近一次扫描时间，且没有过期时间"""
        timestamp = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

        await self.store.record_last_scan_timestamp(timestamp)
        self.clock.advance(10 * 86400)

        assert self.store.get_last_check() == '2024-05-01T08:30:00+00:00'


class TestStoreDegradation:
    """后端失败时的降级行为测试"""

    def setup_method(self):
        self.store = MemoryAlertStateStore({'operation_timeout': 0.05})

    @pytest.mark.asyncio
    async def test_has_down_flag_failure_returns_false(self):
        """测试查询失败视为标记不存在"""
        with patch.object(self.store, '_has_down_flag', side_effect=ConnectionError('down')):
            assert await self.store.has_down_flag('svc', 'Dev1') is False

    @pytest.mark.asyncio
    async def test_run_lock_failure_proceeds(self):
        """测试运行锁失败时继续扫描"""
        with patch.object(self.store, '_acquire_run_lock', side_effect=ConnectionError('down')):
            assert await self.store.try_acquire_run_lock() is True

    @pytest.mark.asyncio
    async def test_mutation_failure_is_swallowed(self):
        """测试写操作失败不抛出异常"""
        with patch.object(self.store, '_set_down_flag', side_effect=ConnectionError('down')), \
                patch.object(self.store, '_clear_down_flag', side_effect=ConnectionError('down')), \
                patch.object(self.store, '_record_last_check', side_effect=ConnectionError('down')):
            await self.store.set_down_flag('svc', 'Dev1', 60)
            await self.store.clear_down_flag('svc', 'Dev1')
            await self.store.record_last_scan_timestamp(datetime.now(timezone.utc))

        assert await self.store.has_down_flag('svc', 'Dev1') is False

    @pytest.mark.asyncio
    async def test_slow_backend_times_out(self):
        """测试后端超时按默认值处理"""
        async def hang(key):
            await asyncio.sleep(1)
            return True

        with patch.object(self.store, '_has_down_flag', side_effect=hang):
            assert await self.store.has_down_flag('svc', 'Dev1') is False


class TestCreateStateStore:
    """状态存储工厂测试"""

    def test_default_is_memory(self):
        """测试默认创建进程内存储"""
        assert isinstance(create_state_store(), MemoryAlertStateStore)
        assert isinstance(create_state_store({}), MemoryAlertStateStore)

    def test_redis(self):
        """测试创建Redis存储，客户端延迟创建"""
        store = create_state_store({'type': 'redis', 'url': 'redis://localhost:6379/0',
                                    'lock_window': 300, 'lock_ttl': 400})

        assert isinstance(store, RedisAlertStateStore)
        assert store.lock_window == 300
        assert store.lock_ttl == 400
        assert store._client is None

    def test_unknown_type(self):
        """测试不支持的存储类型"""
        with pytest.raises(ConfigError, match="etcd"):
            create_state_store({'type': 'etcd'})

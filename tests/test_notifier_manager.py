"""通知管理器测试"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from fleet_monitor.alerts.base import BaseNotifier, describe_status_code
from fleet_monitor.alerts.email_notifier import EmailNotifier
from fleet_monitor.alerts.manager import NotifierManager
from fleet_monitor.alerts.teams_notifier import TeamsNotifier
from fleet_monitor.models.health_check import FailingEnv, RecoveredEnv
from fleet_monitor.utils.exceptions import NotifierConfigError, NotifierSendError


class MockNotifier(BaseNotifier):
    """模拟通知器"""

    def __init__(self, name, fail=False):
        super().__init__(name, {})
        self.fail = fail
        self.down_calls = []
        self.recovery_calls = []

    async def send_down_alert(self, service_name, failing_envs):
        self.down_calls.append((service_name, failing_envs))
        if self.fail:
            raise NotifierSendError('发送失败', notifier_name=self.name)
        return True

    async def send_recovery_alert(self, service_name, recovered_envs):
        self.recovery_calls.append((service_name, recovered_envs))
        return not self.fail

    def validate_config(self):
        return True


class SlowNotifier(MockNotifier):
    """发送前先等待一段时间的通知器"""

    def __init__(self, name, delay):
        super().__init__(name)
        self.delay = delay
        self.completed = False

    async def send_down_alert(self, service_name, failing_envs):
        await asyncio.sleep(self.delay)
        self.completed = True
        return await super().send_down_alert(service_name, failing_envs)


class TestNotifierManager:
    """通知管理器测试类"""

    def setup_method(self):
        """测试前准备"""
        self.failing_envs = [FailingEnv('Prod', 'https://prod/health', 503)]
        self.recovered_envs = [RecoveredEnv('Prod', 'https://prod/health')]

    def test_initialize_from_config(self):
        """测试从配置初始化通知器"""
        manager = NotifierManager([
            {'name': 'ops-teams', 'type': 'teams',
             'url': 'https://example.webhook.office.com/webhookb2/abc'},
            {'name': 'ops-mail', 'type': 'email', 'smtp_server': 'smtp.example.com',
             'from_email': 'monitor@example.com', 'to_emails': ['ops@example.com']},
        ])

        assert manager.get_notifier_count() == 2
        assert manager.get_notifier_names() == ['ops-teams', 'ops-mail']
        assert isinstance(manager.notifiers[0], TeamsNotifier)
        assert isinstance(manager.notifiers[1], EmailNotifier)

    def test_invalid_entries_are_skipped(self):
        """测试无效的通知器配置被跳过"""
        manager = NotifierManager([
            {'name': 'pager', 'type': 'pagerduty'},
            {'name': 'broken-teams', 'type': 'teams'},
            {'name': 'ops-teams', 'type': 'teams', 'url': 'https://example.com/hook'},
        ])

        assert manager.get_notifier_names() == ['ops-teams']

    def test_add_and_remove_notifier(self):
        """测试添加和移除通知器"""
        manager = NotifierManager()
        manager.add_notifier(MockNotifier('mock'))

        assert manager.get_notifier_count() == 1
        assert manager.remove_notifier('mock') is True
        assert manager.remove_notifier('mock') is False

    def test_add_invalid_notifier(self):
        """测试添加非通知器对象"""
        manager = NotifierManager()

        with pytest.raises(NotifierConfigError):
            manager.add_notifier(object())

    @pytest.mark.asyncio
    async def test_fan_out_down_alert(self):
        """测试故障告警扇出到所有通知器"""
        manager = NotifierManager()
        first, second = MockNotifier('first'), MockNotifier('second')
        manager.add_notifier(first)
        manager.add_notifier(second)

        results = await manager.send_down_alert('Crop Service', self.failing_envs)

        assert results == {'first': True, 'second': True}
        assert first.down_calls == [('Crop Service', self.failing_envs)]
        assert second.down_calls == [('Crop Service', self.failing_envs)]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self):
        """测试单个通知器失败不影响其他通知器"""
        manager = NotifierManager()
        healthy = MockNotifier('healthy')
        manager.add_notifier(MockNotifier('broken', fail=True))
        manager.add_notifier(healthy)

        results = await manager.send_down_alert('Crop Service', self.failing_envs)

        assert results == {'broken': False, 'healthy': True}
        assert len(healthy.down_calls) == 1

    @pytest.mark.asyncio
    async def test_recovery_alert_results(self):
        """测试恢复通知返回值"""
        manager = NotifierManager()
        manager.add_notifier(MockNotifier('ok'))
        manager.add_notifier(MockNotifier('not-ok', fail=True))

        results = await manager.send_recovery_alert('Crop Service', self.recovered_envs)

        assert results == {'ok': True, 'not-ok': False}

    @pytest.mark.asyncio
    async def test_no_notifiers(self):
        """测试没有通知器时直接返回"""
        manager = NotifierManager()

        assert await manager.send_down_alert('Crop Service', self.failing_envs) == {}

    @pytest.mark.asyncio
    async def test_real_notifier_is_called(self):
        """测试调用具体通知器实现"""
        manager = NotifierManager([
            {'name': 'ops-teams', 'type': 'teams', 'url': 'https://example.com/hook'}
        ])
        teams = manager.notifiers[0]
        teams._post_card = AsyncMock()

        results = await manager.send_down_alert('Crop Service', self.failing_envs)

        assert results == {'ops-teams': True}
        teams._post_card.assert_awaited_once()


class TestDescribeStatusCode:
    """状态码描述测试"""

    def test_timeout(self):
        assert describe_status_code(0) == 'Timeout'

    def test_http_code(self):
        assert describe_status_code(503) == '503'


class TestNotifierTimeout:
    """单个通知器限时测试"""

    def setup_method(self):
        """测试前准备"""
        self.failing_envs = [FailingEnv('Prod', 'https://prod/health', 503)]

    @pytest.mark.asyncio
    async def test_slow_notifier_does_not_cancel_others(self):
        """测试超时的通知器不会取消其他仍在发送的通知器"""
        manager = NotifierManager(notify_timeout=0.2)
        stuck = SlowNotifier('stuck-webhook', delay=10)
        mail = SlowNotifier('mail', delay=0.05)
        manager.add_notifier(stuck)
        manager.add_notifier(mail)

        results = await asyncio.wait_for(
            manager.send_down_alert('Crop Service', self.failing_envs), timeout=2)

        assert results == {'stuck-webhook': False, 'mail': True}
        assert mail.completed is True
        assert stuck.completed is False

    @pytest.mark.asyncio
    async def test_without_timeout_waits_for_all(self):
        """测试未设置超时时等待所有通知器完成"""
        manager = NotifierManager()
        slow = SlowNotifier('slow', delay=0.1)
        manager.add_notifier(slow)

        results = await manager.send_down_alert('Crop Service', self.failing_envs)

        assert results == {'slow': True}

    def test_retry_budget(self):
        """测试默认重试策略的最坏耗时"""
        teams = TeamsNotifier('ops-teams', {'url': 'https://example.com/hook'})
        mail = EmailNotifier('ops-mail', {
            'smtp_server': 'smtp.example.com', 'from_email': 'monitor@example.com',
            'to_emails': ['ops@example.com']})

        # 4次尝试 x 10秒 + 1 + 2 + 4 秒退避
        assert teams.get_retry_budget() == 47
        # 3次尝试 x 10秒 + 2 + 4 秒退避
        assert mail.get_retry_budget() == 36
        assert MockNotifier('mock').get_retry_budget() == 10

    def test_over_budget_notifiers(self):
        """测试找出重试预算超过 notify_timeout 的通知器"""
        manager = NotifierManager([
            {'name': 'ops-teams', 'type': 'teams', 'url': 'https://example.com/hook'},
            {'name': 'quick-teams', 'type': 'teams', 'url': 'https://example.com/hook',
             'max_retries': 0, 'timeout': 5},
        ], notify_timeout=15)

        assert manager.get_over_budget_notifiers() == ['ops-teams']
        assert NotifierManager(notify_timeout=None).get_over_budget_notifiers() == []

"""通知管理器"""

import asyncio
from typing import Dict, List, Any, Awaitable, Callable, Optional

from .base import BaseNotifier
from .email_notifier import EmailNotifier
from .teams_notifier import TeamsNotifier
from ..models.health_check import FailingEnv, RecoveredEnv
from ..utils.exceptions import NotifierConfigError, NotifierSendError
from ..utils.log_manager import get_logger

NOTIFIER_TYPES = {
    'teams': TeamsNotifier,
    'email': EmailNotifier,
}


class NotifierManager:
    """通知管理器，负责管理通知器并把分组告警扇出到所有通知器"""

    def __init__(self, notifier_configs: List[Dict[str, Any]] = None,
                 notify_timeout: Optional[float] = None):
        """
        初始化通知管理器

        Args:
            notifier_configs: 通知器配置列表
            notify_timeout: 单个通知器一次发送的最长时间（秒），None 表示不限制。
                每个通知器单独计时，超时的通知器不影响其他通知器。
        """
        self.notifiers: List[BaseNotifier] = []
        self.notify_timeout = notify_timeout
        self.logger = get_logger('notifier.manager')
        self._initialize_notifiers(notifier_configs or [])

    def _initialize_notifiers(self, notifier_configs: List[Dict[str, Any]]):
        for config in notifier_configs:
            notifier_type = str(config.get('type', '')).lower()
            notifier_name = config.get('name', f'notifier_{len(self.notifiers)}')

            notifier_class = NOTIFIER_TYPES.get(notifier_type)
            if notifier_class is None:
                self.logger.warning(f"不支持的通知器类型: {notifier_type}")
                continue

            try:
                self.add_notifier(notifier_class(notifier_name, config))
            except NotifierConfigError as e:
                self.logger.error(f"初始化通知器失败 {notifier_name}: {e}")

    def add_notifier(self, notifier: BaseNotifier):
        """
        添加通知器

        Raises:
            NotifierConfigError: 不是 BaseNotifier 实例
        """
        if not isinstance(notifier, BaseNotifier):
            raise NotifierConfigError(f"通知器必须继承自BaseNotifier: {type(notifier)}")

        self.notifiers.append(notifier)
        self.logger.info(f"已添加通知器: {notifier.name} ({notifier.notifier_type})")

        if self._exceeds_timeout(notifier):
            self.logger.warning(
                f"通知器 {notifier.name} 最坏情况下的发送耗时 "
                f"{notifier.get_retry_budget():.0f}s 超过 notify_timeout "
                f"{self.notify_timeout}s，超时后剩余的重试会被放弃")

    def _exceeds_timeout(self, notifier: BaseNotifier) -> bool:
        return (self.notify_timeout is not None
                and notifier.get_retry_budget() > self.notify_timeout)

    def get_over_budget_notifiers(self) -> List[str]:
        """重试预算超过 notify_timeout 的通知器名称"""
        return [notifier.name for notifier in self.notifiers if self._exceeds_timeout(notifier)]

    def remove_notifier(self, name: str) -> bool:
        for i, notifier in enumerate(self.notifiers):
            if notifier.name == name:
                self.notifiers.pop(i)
                self.logger.info(f"已移除通知器: {name}")
                return True
        return False

    async def send_down_alert(self, service_name: str,
                              failing_envs: List[FailingEnv]) -> Dict[str, bool]:
        """
        向所有通知器发送分组故障告警

        Returns:
            通知器名称 -> 是否发送成功
        """
        return await self._fan_out(
            'DOWN', service_name,
            lambda notifier: notifier.send_down_alert(service_name, failing_envs))

    async def send_recovery_alert(self, service_name: str,
                                  recovered_envs: List[RecoveredEnv]) -> Dict[str, bool]:
        """
        向所有通知器发送分组恢复通知

        Returns:
            通知器名称 -> 是否发送成功
        """
        return await self._fan_out(
            'RECOVERY', service_name,
            lambda notifier: notifier.send_recovery_alert(service_name, recovered_envs))

    async def _fan_out(self, kind: str, service_name: str,
                       send: Callable[[BaseNotifier], Awaitable[bool]]) -> Dict[str, bool]:
        if not self.notifiers:
            self.logger.warning(f"没有配置通知器，跳过 {kind} 告警: {service_name}")
            return {}

        notifiers = list(self.notifiers)
        results = await asyncio.gather(
            *(self._send_bounded(notifier, send) for notifier in notifiers),
            return_exceptions=True)

        outcome: Dict[str, bool] = {}
        for notifier, result in zip(notifiers, results):
            if isinstance(result, Exception):
                self.logger.error(f"通知器 {notifier.name} 发送 {kind} 告警失败: {result}")
                outcome[notifier.name] = False
            else:
                outcome[notifier.name] = bool(result)

        success_count = sum(1 for ok in outcome.values() if ok)
        if success_count:
            self.logger.info(
                f"{kind} 告警发送成功 {success_count}/{len(notifiers)} 个通知器 "
                f"(服务: {service_name})")

        failed = [name for name, ok in outcome.items() if not ok]
        if failed:
            self.logger.warning(
                f"以下通知器发送失败: {', '.join(failed)} (服务: {service_name})")

        return outcome

    async def _send_bounded(self, notifier: BaseNotifier,
                            send: Callable[[BaseNotifier], Awaitable[bool]]) -> bool:
        if self.notify_timeout is None:
            return await send(notifier)
        try:
            return await asyncio.wait_for(send(notifier), timeout=self.notify_timeout)
        except asyncio.TimeoutError:
            raise NotifierSendError(f"发送超时 ({self.notify_timeout}s)",
                                    notifier_name=notifier.name) from None

    def get_notifier_count(self) -> int:
        return len(self.notifiers)

    def get_notifier_names(self) -> List[str]:
        return [notifier.name for notifier in self.notifiers]

"""告警协调器

根据一次扫描的结果和告警状态存储，决定哪些端点需要新的故障告警、
哪些端点需要恢复通知。去重依赖 24 小时TTL的 DOWN 标记：
同一服务和环境在标记有效期内只告警一次，恢复时删除标记。
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Any, Awaitable, Optional, Protocol

from ..models.health_check import FailingEnv, ProbeOutcome, RecoveredEnv, ScanSummary
from ..stores.base import BaseAlertStateStore
from ..utils.log_manager import get_logger


class Notifier(Protocol):
    """协调器依赖的通知接口"""

    async def send_down_alert(self, service_name: str, failing_envs: List[FailingEnv]) -> Any:
        ...

    async def send_recovery_alert(self, service_name: str,
                                  recovered_envs: List[RecoveredEnv]) -> Any:
        ...


class AlertReconciler:
    """告警协调器"""

    DEFAULT_DOWN_FLAG_TTL = 86400
    DEFAULT_NOTIFY_TIMEOUT = 15

    def __init__(self, store: BaseAlertStateStore, notifier: Notifier,
                 down_flag_ttl: int = DEFAULT_DOWN_FLAG_TTL,
                 notify_timeout: Optional[float] = DEFAULT_NOTIFY_TIMEOUT):
        """
        初始化告警协调器

        Args:
            store: 告警状态存储
            notifier: 通知器（通常是 NotifierManager）
            down_flag_ttl: DOWN 标记有效期（秒），即故障告警的抑制窗口
            notify_timeout: 单次分组通知调用的最长等待时间（秒），None 表示由通知器自行限时
        """
        self.store = store
        self.notifier = notifier
        self.down_flag_ttl = down_flag_ttl
        self.notify_timeout = notify_timeout
        self.logger = get_logger('reconciler')

    async def reconcile(self, outcomes: List[ProbeOutcome]) -> ScanSummary:
        """
        协调一次扫描的结果

        Args:
            outcomes: 全部端点的探测结果

        Returns:
            ScanSummary: 扫描汇总，与告警是否被抑制无关
        """
        groups = self._group_by_service(outcomes)

        service_names = list(groups.keys())
        results = await asyncio.gather(
            *(self._reconcile_service(name, groups[name]) for name in service_names),
            return_exceptions=True
        )
        for service_name, result in zip(service_names, results):
            if isinstance(result, Exception):
                self.logger.error(f"协调服务 {service_name} 的告警时发生异常: {result}")

        summary = ScanSummary.from_outcomes(outcomes)
        self.logger.info(
            f"协调完成: 共 {summary.total} 个端点, UP {summary.up}, DOWN {summary.down}")
        return summary

    @staticmethod
    def _group_by_service(outcomes: List[ProbeOutcome]) -> Dict[str, List[ProbeOutcome]]:
        groups: Dict[str, List[ProbeOutcome]] = defaultdict(list)
        for outcome in outcomes:
            groups[outcome.service_name].append(outcome)
        return groups

    async def _reconcile_service(self, service_name: str, outcomes: List[ProbeOutcome]):
        down = [outcome for outcome in outcomes if not outcome.is_up]
        up = [outcome for outcome in outcomes if outcome.is_up]

        new_failures = await self._collect_new_failures(down)
        if new_failures:
            self.logger.warning(
                f"服务 {service_name} 新增故障环境: "
                f"{', '.join(outcome.env_name for outcome in new_failures)}")
            failing_envs = [
                FailingEnv(env_name=o.env_name, url=o.url, status_code=o.status_code)
                for o in new_failures
            ]
            await self._notify('DOWN', service_name,
                               self.notifier.send_down_alert(service_name, failing_envs))

        recovered = await self._collect_recoveries(up)
        if recovered:
            self.logger.info(
                f"服务 {service_name} 恢复环境: "
                f"{', '.join(outcome.env_name for outcome in recovered)}")
            recovered_envs = [RecoveredEnv(env_name=o.env_name, url=o.url) for o in recovered]
            await self._notify('RECOVERY', service_name,
                               self.notifier.send_recovery_alert(service_name, recovered_envs))

    async def _collect_new_failures(self, down: List[ProbeOutcome]) -> List[ProbeOutcome]:
        """查询 DOWN 标记，未标记的端点作为新故障并写入标记"""
        if not down:
            return []

        flags = await asyncio.gather(
            *(self.store.has_down_flag(o.service_name, o.env_name) for o in down))

        new_failures = []
        for outcome, already_alerted in zip(down, flags):
            if already_alerted:
                self.logger.info(
                    f"跳过 {outcome.service_name} ({outcome.env_name}) 的告警，抑制窗口内已发送")
            else:
                new_failures.append(outcome)

        await asyncio.gather(
            *(self.store.set_down_flag(o.service_name, o.env_name, self.down_flag_ttl)
              for o in new_failures))
        return new_failures

    async def _collect_recoveries(self, up: List[ProbeOutcome]) -> List[ProbeOutcome]:
        """UP 端点仍有 DOWN 标记即为恢复，删除标记"""
        if not up:
            return []

        flags = await asyncio.gather(
            *(self.store.has_down_flag(o.service_name, o.env_name) for o in up))
        recovered = [outcome for outcome, flagged in zip(up, flags) if flagged]

        await asyncio.gather(
            *(self.store.clear_down_flag(o.service_name, o.env_name) for o in recovered))
        return recovered

    async def _notify(self, kind: str, service_name: str, call: Awaitable[Any]):
        """带超时的通知调用，失败只记录日志，不回滚已写入的标记"""
        try:
            if self.notify_timeout is None:
                await call
            else:
                await asyncio.wait_for(call, timeout=self.notify_timeout)
        except asyncio.TimeoutError:
            self.logger.error(
                f"服务 {service_name} 的 {kind} 通知超时 ({self.notify_timeout}s)")
        except Exception as e:
            self.logger.error(f"服务 {service_name} 的 {kind} 通知失败: {e}")

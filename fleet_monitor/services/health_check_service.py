"""健康检查服务

对外暴露的唯一操作：获取运行锁、扫描全部端点、协调告警并返回结果
"""

from typing import List

from .fleet_scanner import FleetScanner
from ..alerts.reconciler import AlertReconciler
from ..models.health_check import Endpoint, ScanResult
from ..stores.base import BaseAlertStateStore
from ..utils.log_manager import get_logger


class HealthCheckService:
    """健康检查服务"""

    def __init__(self, endpoints: List[Endpoint], scanner: FleetScanner,
                 reconciler: AlertReconciler, store: BaseAlertStateStore):
        """初始化健康检查服务

        Args:
            endpoints: 被监控的端点列表
            scanner: 集群扫描器
            reconciler: 告警协调器
            store: 告警状态存储，提供运行锁
        """
        self.endpoints = list(endpoints)
        self.scanner = scanner
        self.reconciler = reconciler
        self.store = store
        self.logger = get_logger('health_check')

    def update_endpoints(self, endpoints: List[Endpoint]):
        """替换被监控的端点列表，下一次扫描生效"""
        self.endpoints = list(endpoints)
        self.logger.info(f"端点列表已更新，共 {len(self.endpoints)} 个端点")

    async def run_check(self) -> ScanResult:
        """执行一次扫描与告警协调

        Returns:
            ScanResult: completed 结果携带汇总；与最近一次扫描重叠时返回 skipped
        """
        if not await self.store.try_acquire_run_lock():
            self.logger.info("健康检查最近已运行，本次跳过")
            return ScanResult.skipped()

        outcomes = await self.scanner.scan_all(self.endpoints)
        summary = await self.reconciler.reconcile(outcomes)
        await self.store.record_last_scan_timestamp(summary.timestamp)

        if summary.down:
            down_list = ', '.join(
                f"{o.service_name} ({o.env_name})" for o in summary.down_endpoints)
            self.logger.warning(f"健康检查完成，{summary.down} 个端点故障: {down_list}")
        else:
            self.logger.info(f"健康检查完成，全部 {summary.total} 个端点正常")

        return ScanResult.completed(summary)

"""监控调度器模块

按固定间隔触发健康检查
"""

import asyncio
from datetime import datetime
from typing import Dict, Any, Optional, Callable, Awaitable

from .health_check_service import HealthCheckService
from ..models.health_check import ScanResult
from ..utils.exceptions import ErrorCode, SchedulerError
from ..utils.log_manager import get_logger


class MonitorScheduler:
    """监控调度器

    按 check_interval 周期执行 run_check。上一轮未结束前不会开始下一轮，
    单轮中的任何异常都不会终止调度循环。
    """

    DEFAULT_CHECK_INTERVAL = 600

    def __init__(self, service: HealthCheckService,
                 check_interval: int = DEFAULT_CHECK_INTERVAL):
        """初始化监控调度器

        Args:
            service: 健康检查服务
            check_interval: 检查间隔（秒）
        """
        if check_interval <= 0:
            raise SchedulerError("检查间隔必须是正整数",
                                 details={'check_interval': check_interval},
                                 recoverable=False)

        self.service = service
        self.check_interval = check_interval
        self.is_running = False
        self.last_run_time: Optional[datetime] = None
        self.last_result: Optional[ScanResult] = None
        self.run_count = 0
        self.skipped_count = 0
        self.error_count = 0
        self._stop_event: Optional[asyncio.Event] = None
        self.logger = get_logger('scheduler')

        # 回调函数
        self.on_scan_result: Optional[Callable[[ScanResult], Awaitable[None]]] = None

    def set_scan_result_callback(self, callback: Callable[[ScanResult], Awaitable[None]]):
        """设置扫描结果回调函数

        Args:
            callback: 每轮检查完成（包括跳过）后调用
        """
        self.on_scan_result = callback

    async def start(self):
        """启动监控调度器，直到 stop 被调用"""
        if self.is_running:
            self.logger.warning("监控调度器已经在运行")
            return

        self.is_running = True
        self._stop_event = asyncio.Event()
        self.logger.info(f"启动监控调度器，检查间隔: {self.check_interval}秒")

        try:
            await self._schedule_loop()
        except asyncio.CancelledError:
            self.logger.info("监控调度器被取消")
        finally:
            self.is_running = False
            self.logger.info("监控调度器已停止")

    async def stop(self):
        """停止监控调度器"""
        if not self.is_running:
            return

        self.logger.info("正在停止监控调度器...")
        self.is_running = False
        if self._stop_event:
            self._stop_event.set()

    async def _schedule_loop(self):
        """调度循环"""
        while self.is_running:
            await self.run_once()

            if not self.is_running:
                break

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Optional[ScanResult]:
        """执行一轮健康检查

        Returns:
            检查结果，发生异常时返回None
        """
        self.last_run_time = datetime.now()
        self.run_count += 1

        try:
            result = await self.service.run_check()
        except Exception as e:
            self.error_count += 1
            error = SchedulerError("健康检查执行异常", ErrorCode.TASK_EXECUTION_ERROR,
                                   details={'run': self.run_count}, cause=e)
            self.logger.error(error.format_error(), exc_info=True)
            return None

        self.last_result = result
        if result.is_skipped:
            self.skipped_count += 1

        if self.on_scan_result:
            try:
                await self.on_scan_result(result)
            except Exception as e:
                self.logger.error(f"扫描结果回调执行失败: {e}")

        return result

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息"""
        return {
            'is_running': self.is_running,
            'check_interval': self.check_interval,
            'total_endpoints': len(self.service.endpoints),
            'run_count': self.run_count,
            'skipped_count': self.skipped_count,
            'error_count': self.error_count,
            'last_run_time': self.last_run_time.isoformat() if self.last_run_time else None,
            'last_result': self.last_result.to_dict() if self.last_result else None,
        }

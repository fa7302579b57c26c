"""集群扫描器模块

并发探测全部端点，收集所有结果
"""

import asyncio
import time
from typing import List, Optional

import aiohttp

from ..checkers.prober import EndpointProber
from ..models.health_check import Endpoint, ProbeOutcome
from ..utils.log_manager import get_logger


class FleetScanner:
    """集群扫描器

    每个端点一个任务并发探测，单个端点的失败不会阻塞或中止其他端点。
    """

    def __init__(self, prober: EndpointProber, max_concurrent_probes: Optional[int] = None):
        """初始化集群扫描器

        Args:
            prober: 端点探测器
            max_concurrent_probes: 最大并发探测数，None 或 0 表示不限制
        """
        self.prober = prober
        self.max_concurrent_probes = max_concurrent_probes or None
        self.logger = get_logger('scanner')

    async def scan_all(self, endpoints: List[Endpoint]) -> List[ProbeOutcome]:
        """探测所有端点

        Args:
            endpoints: 端点列表

        Returns:
            与输入顺序一致的探测结果列表，每个端点恰好一个结果
        """
        if not endpoints:
            self.logger.warning("没有配置任何端点，跳过扫描")
            return []

        self.logger.info(f"开始扫描 {len(endpoints)} 个端点")
        start_time = time.monotonic()

        semaphore = None
        if self.max_concurrent_probes:
            semaphore = asyncio.Semaphore(self.max_concurrent_probes)

        async with aiohttp.ClientSession() as session:
            tasks = [
                asyncio.create_task(self._probe(endpoint, session, semaphore))
                for endpoint in endpoints
            ]
            task_results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[ProbeOutcome] = []
        for endpoint, result in zip(endpoints, task_results):
            if isinstance(result, BaseException):
                self.logger.error(
                    f"探测 {endpoint.service_name} ({endpoint.env_name}) 任务异常: {result}")
                outcomes.append(ProbeOutcome.down(endpoint, error_message=f"探测任务异常: {result}"))
            else:
                outcomes.append(result)

        elapsed = time.monotonic() - start_time
        up_count = sum(1 for outcome in outcomes if outcome.is_up)
        self.logger.info(
            f"扫描完成: 共 {len(outcomes)} 个端点, UP {up_count}, "
            f"DOWN {len(outcomes) - up_count}, 耗时 {elapsed:.2f}s")

        return outcomes

    async def _probe(self, endpoint: Endpoint, session: aiohttp.ClientSession,
                     semaphore: Optional[asyncio.Semaphore]) -> ProbeOutcome:
        if semaphore is None:
            return await self.prober.probe(endpoint, session)

        async with semaphore:  # 控制并发数量
            return await self.prober.probe(endpoint, session)

"""集群扫描器测试"""

import asyncio
import pytest
from unittest.mock import patch

from fleet_monitor.checkers.prober import EndpointProber
from fleet_monitor.models.health_check import Endpoint, ProbeOutcome, ProbeStatus
from fleet_monitor.services.fleet_scanner import FleetScanner


class FakeProber(EndpointProber):
    """按环境名称返回预设结果的探测器"""

    def __init__(self, failures=None, raising=None, delay=0.0):
        super().__init__(timeout=1, classifiers=[])
        self.failures = failures or {}
        self.raising = raising or set()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.sessions = set()

    async def probe(self, endpoint, session=None):
        self.sessions.add(id(session))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if endpoint.env_name in self.raising:
                raise RuntimeError(f'{endpoint.env_name} exploded')
            status_code = self.failures.get(endpoint.env_name, 200)
            return ProbeOutcome(
                service_id=endpoint.service_id,
                service_name=endpoint.service_name,
                env_name=endpoint.env_name,
                url=endpoint.url,
                status=ProbeStatus.UP if status_code == 200 else ProbeStatus.DOWN,
                status_code=status_code,
                duration_ms=int(self.delay * 1000)
            )
        finally:
            self.in_flight -= 1


def make_endpoints(count):
    return [
        Endpoint('svc', 'Service', f'Env{i}', f'https://env{i}.example.com/health')
        for i in range(count)
    ]


class TestFleetScanner:
    """集群扫描器测试类"""

    @pytest.mark.asyncio
    async def test_one_outcome_per_endpoint_in_order(self):
        """测试每个端点恰好一个结果且保持输入顺序"""
        endpoints = make_endpoints(5)
        scanner = FleetScanner(FakeProber(failures={'Env3': 503}))

        outcomes = await scanner.scan_all(endpoints)

        assert len(outcomes) == len(endpoints)
        assert [o.env_name for o in outcomes] == [e.env_name for e in endpoints]
        assert [o.status_code for o in outcomes] == [200, 200, 200, 503, 200]

    @pytest.mark.asyncio
    async def test_probe_exception_becomes_down(self):
        """测试探测任务异常被转换为DOWN结果"""
        endpoints = make_endpoints(3)
        scanner = FleetScanner(FakeProber(raising={'Env1'}))

        outcomes = await scanner.scan_all(endpoints)

        assert len(outcomes) == 3
        assert outcomes[0].is_up
        assert outcomes[1].status is ProbeStatus.DOWN
        assert outcomes[1].status_code == 0
        assert 'exploded' in outcomes[1].error_message
        assert outcomes[2].is_up

    @pytest.mark.asyncio
    async def test_empty_endpoint_list(self):
        """测试空端点列表不创建HTTP会话"""
        scanner = FleetScanner(FakeProber())

        with patch('fleet_monitor.services.fleet_scanner.aiohttp.ClientSession') as session_cls:
            outcomes = await scanner.scan_all([])

        assert outcomes == []
        session_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        """测试探测并发执行并共享同一个会话"""
        prober = FakeProber(delay=0.2)
        scanner = FleetScanner(prober)

        loop = asyncio.get_running_loop()
        start = loop.time()
        outcomes = await scanner.scan_all(make_endpoints(10))
        elapsed = loop.time() - start

        assert len(outcomes) == 10
        assert prober.max_in_flight == 10
        assert elapsed < 1.0
        assert len(prober.sessions) == 1

    @pytest.mark.asyncio
    async def test_max_concurrent_probes(self):
        """测试并发上限"""
        prober = FakeProber(delay=0.05)
        scanner = FleetScanner(prober, max_concurrent_probes=3)

        outcomes = await scanner.scan_all(make_endpoints(9))

        assert len(outcomes) == 9
        assert prober.max_in_flight == 3

    def test_zero_means_unbounded(self):
        """测试并发上限为0表示不限制"""
        scanner = FleetScanner(FakeProber(), max_concurrent_probes=0)

        assert scanner.max_concurrent_probes is None

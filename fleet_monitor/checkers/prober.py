"""HTTP端点探测器"""

import asyncio
import time
from typing import Dict, Any, List, Optional, Tuple

import aiohttp

from .classifiers import BodyClassifier, classifier_registry
from ..models.health_check import Endpoint, ProbeOutcome, ProbeStatus
from ..utils.exceptions import ErrorCode, ProbeError
from ..utils.log_manager import get_logger


class EndpointProber:
    """端点探测器

    对单个端点发起一次带超时的 GET 请求并给出 UP/DOWN 结论。
    probe 从不抛出异常，所有失败都折叠为 DOWN 结果。
    """

    DEFAULT_TIMEOUT = 8
    DEFAULT_CLASSIFIERS = ['json_status']

    # 绕过中间缓存
    REQUEST_HEADERS = {
        'Cache-Control': 'no-store',
        'Pragma': 'no-cache',
    }

    def __init__(self, timeout: float = DEFAULT_TIMEOUT,
                 classifiers: Optional[List[BodyClassifier]] = None):
        """
        初始化端点探测器

        Args:
            timeout: 单次探测的硬超时（秒），包含读取响应体
            classifiers: 响应体分类器链，None 表示使用默认的 json_status
        """
        self.timeout = timeout
        if classifiers is None:
            classifiers = classifier_registry.resolve(self.DEFAULT_CLASSIFIERS)
        self.classifiers = list(classifiers)
        self.logger = get_logger('prober')

    @classmethod
    def from_config(cls, global_config: Dict[str, Any]) -> 'EndpointProber':
        """
        根据全局配置创建探测器

        Raises:
            ConfigError: 配置了未注册的分类器
        """
        names = global_config.get('body_classifiers', cls.DEFAULT_CLASSIFIERS)
        return cls(
            timeout=global_config.get('probe_timeout', cls.DEFAULT_TIMEOUT),
            classifiers=classifier_registry.resolve(names)
        )

    async def probe(self, endpoint: Endpoint,
                    session: Optional[aiohttp.ClientSession] = None) -> ProbeOutcome:
        """
        探测单个端点

        Args:
            endpoint: 被探测的端点
            session: 共享的HTTP会话，为None时临时创建

        Returns:
            ProbeOutcome: 探测结果
        """
        start_time = time.monotonic()
        status_code = 0
        status = ProbeStatus.DOWN
        error_message = None

        try:
            if session is None:
                async with aiohttp.ClientSession() as own_session:
                    status_code, body = await asyncio.wait_for(
                        self._fetch(own_session, endpoint.url), timeout=self.timeout)
            else:
                status_code, body = await asyncio.wait_for(
                    self._fetch(session, endpoint.url), timeout=self.timeout)

            status, error_message = self.classify(status_code, body)

        except asyncio.TimeoutError:
            error_message = f"请求超时 ({self.timeout}s)"
        except aiohttp.ClientError as e:
            error_message = f"HTTP客户端错误: {e}"
        except Exception as e:
            error = ProbeError(f"探测异常: {e}", ErrorCode.PROBE_INVALID_RESPONSE,
                               service_name=endpoint.service_name,
                               env_name=endpoint.env_name, cause=e)
            error_message = error.message
            self.logger.error(error.format_error(), exc_info=True)

        duration_ms = int((time.monotonic() - start_time) * 1000)

        if status is ProbeStatus.UP:
            self.logger.debug(
                f"{endpoint.service_name} ({endpoint.env_name}) UP, "
                f"状态码: {status_code}, 耗时: {duration_ms}ms")
        else:
            self.logger.warning(
                f"{endpoint.service_name} ({endpoint.env_name}) DOWN, "
                f"状态码: {status_code}, 耗时: {duration_ms}ms, 原因: {error_message}")

        return ProbeOutcome(
            service_id=endpoint.service_id,
            service_name=endpoint.service_name,
            env_name=endpoint.env_name,
            url=endpoint.url,
            status=status,
            status_code=status_code,
            duration_ms=duration_ms,
            error_message=error_message
        )

    async def _fetch(self, session: aiohttp.ClientSession, url: str) -> Tuple[int, str]:
        """发送 GET 请求，返回 (状态码, 响应体)"""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.get(url, headers=self.REQUEST_HEADERS, timeout=timeout) as response:
            try:
                raw = await response.read()
            except aiohttp.ClientPayloadError as e:
                # 已经收到状态码，响应体损坏时只按状态码分类
                self.logger.debug(f"读取响应体失败 {url}: {e}")
                raw = b''
            return response.status, raw.decode('utf-8', errors='replace')

    def classify(self, status_code: int, body: str) -> Tuple[ProbeStatus, Optional[str]]:
        """
        根据状态码和响应体分类

        Returns:
            (状态, 错误信息)
        """
        if 200 <= status_code < 300:
            status = ProbeStatus.UP
            error_message = None
        else:
            status = ProbeStatus.DOWN
            error_message = f"HTTP状态码: {status_code}"

        override = self._classify_body(body)
        if override is None or override is status:
            return status, error_message

        if override is ProbeStatus.UP:
            return ProbeStatus.UP, None
        return ProbeStatus.DOWN, "响应体报告服务不健康"

    def _classify_body(self, body: str) -> Optional[ProbeStatus]:
        """依次执行分类器，第一个给出结论的分类器生效"""
        for classifier in self.classifiers:
            try:
                result = classifier(body)
            except Exception as e:
                self.logger.error(f"响应体分类器 {getattr(classifier, '__name__', classifier)} 执行失败: {e}")
                continue
            if result is not None:
                return result
        return None

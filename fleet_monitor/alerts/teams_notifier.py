"""Microsoft Teams 通知器实现"""

import asyncio
from datetime import datetime
from typing import Dict, Any, List
from urllib.parse import urlparse

import aiohttp

from .base import BaseNotifier, describe_status_code
from ..models.health_check import FailingEnv, RecoveredEnv
from ..utils.exceptions import NotifierConfigError, NotifierSendError
from ..utils.log_manager import get_logger


class TeamsNotifier(BaseNotifier):
    """通过 Incoming Webhook 向 Teams 频道发送 MessageCard"""

    DOWN_COLOR = 'd70000'
    RECOVERY_COLOR = '2eb886'

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化Teams通知器

        Args:
            name: 通知器名称
            config: 通知器配置
        """
        super().__init__(name, config)
        self.logger = get_logger(f'notifier.teams.{self.name}')

        # 重试配置
        self.max_retries = config.get('max_retries', 3)
        self.retry_delay = config.get('retry_delay', 1.0)  # 秒
        self.retry_backoff = config.get('retry_backoff', 2.0)  # 指数退避倍数

        self.url = config.get('url', '')
        self.headers = config.get('headers', {})

        if not self.validate_config():
            raise NotifierConfigError(f"Teams通知器配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        if not self.url:
            self.logger.error(f"Teams通知器 {self.name} 缺少URL配置")
            return False

        parsed_url = urlparse(self.url)
        if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
            self.logger.error(f"Teams通知器 {self.name} URL格式无效: {self.url}")
            return False

        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            self.logger.error(f"Teams通知器 {self.name} 最大重试次数不能为负数")
            return False

        if self.retry_delay < 0:
            self.logger.error(f"Teams通知器 {self.name} 重试延迟不能为负数")
            return False

        return True

    async def send_down_alert(self, service_name: str, failing_envs: List[FailingEnv]) -> bool:
        env_names = ', '.join(env.env_name for env in failing_envs)
        self.logger.info(f"发送分组故障告警: {service_name} ({len(failing_envs)} 个环境)")
        return await self._send_with_retry(self.build_down_card(service_name, failing_envs),
                                           f"{service_name} DOWN [{env_names}]")

    async def send_recovery_alert(self, service_name: str,
                                  recovered_envs: List[RecoveredEnv]) -> bool:
        env_names = ', '.join(env.env_name for env in recovered_envs)
        self.logger.info(f"发送分组恢复通知: {service_name} ({len(recovered_envs)} 个环境)")
        return await self._send_with_retry(
            self.build_recovery_card(service_name, recovered_envs),
            f"{service_name} RECOVERED [{env_names}]")

    async def _send_with_retry(self, card: Dict[str, Any], description: str) -> bool:
        """
        带指数退避的发送

        Raises:
            NotifierSendError: 所有重试均失败
        """
        for attempt in range(self.max_retries + 1):
            try:
                self.logger.debug(f"尝试发送 {description} (第 {attempt + 1} 次)")
                await self._post_card(card)
                if attempt > 0:
                    self.logger.info(f"Teams通知器 {self.name} 重试第 {attempt} 次后发送成功")
                else:
                    self.logger.info(f"Teams通知器 {self.name} 发送成功: {description}")
                return True

            except Exception as e:
                self.logger.warning(
                    f"Teams通知器 {self.name} 发送失败 "
                    f"(尝试 {attempt + 1}/{self.max_retries + 1}): {e}")

                if attempt < self.max_retries:
                    delay = self.retry_delay * (self.retry_backoff ** attempt)
                    self.logger.debug(f"等待 {delay:.2f} 秒后重试")
                    await asyncio.sleep(delay)
                else:
                    self.logger.error(f"Teams通知器 {self.name} 所有重试均失败，放弃发送")
                    raise NotifierSendError(f"Teams通知发送失败: {e}",
                                            notifier_name=self.name, cause=e)

        return False

    async def _post_card(self, card: Dict[str, Any]) -> None:
        """
        发送HTTP请求

        Raises:
            NotifierSendError: 网络错误、超时或非2xx响应
        """
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        connector = None
        if not self.config.get('ssl_verify', True):
            self.logger.warning(f"Teams通知器 {self.name} 已禁用SSL验证")
            connector = aiohttp.TCPConnector(ssl=False)

        headers = {'Content-Type': 'application/json'}
        headers.update(self.headers)

        try:
            async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
                async with session.post(self.url, json=card, headers=headers) as response:
                    if 200 <= response.status < 300:
                        return
                    response_text = await response.text()
                    raise NotifierSendError(
                        f"Webhook响应状态码 {response.status}: {response_text[:200]}",
                        notifier_name=self.name)

        except aiohttp.ClientError as e:
            raise NotifierSendError(f"HTTP请求失败: {e}", notifier_name=self.name, cause=e)
        except asyncio.TimeoutError as e:
            raise NotifierSendError("HTTP请求超时", notifier_name=self.name, cause=e)

    def build_down_card(self, service_name: str,
                        failing_envs: List[FailingEnv]) -> Dict[str, Any]:
        """构建故障告警卡片，每个环境一条事实和一个跳转按钮"""
        facts = [
            {'name': f'Environment: {env.env_name}',
             'value': f'Status: {describe_status_code(env.status_code)}'}
            for env in failing_envs
        ]
        facts.append({'name': 'Time', 'value': datetime.now().strftime('%Y-%m-%d %H:%M:%S')})

        if len(failing_envs) > 1:
            subtitle = f'Failing in **{len(failing_envs)} environments**'
        else:
            subtitle = f'Environment: **{failing_envs[0].env_name}**'

        return {
            '@type': 'MessageCard',
            '@context': 'http://schema.org/extensions',
            'themeColor': self.DOWN_COLOR,
            'summary': f"{service_name} is DOWN in "
                       f"{', '.join(env.env_name for env in failing_envs)}",
            'sections': [
                {
                    'activityTitle': f'🚨 Service Down: **{service_name}**',
                    'activitySubtitle': subtitle,
                    'facts': facts,
                    'markdown': True,
                }
            ],
            'potentialAction': [
                {
                    '@type': 'OpenUri',
                    'name': f'Check {env.env_name} Health',
                    'targets': [{'os': 'default', 'uri': env.url}],
                }
                for env in failing_envs
            ],
        }

    def build_recovery_card(self, service_name: str,
                            recovered_envs: List[RecoveredEnv]) -> Dict[str, Any]:
        """构建恢复通知卡片"""
        facts = [
            {'name': f'Environment: {env.env_name}', 'value': 'Status: UP'}
            for env in recovered_envs
        ]
        facts.append({'name': 'Time', 'value': datetime.now().strftime('%Y-%m-%d %H:%M:%S')})

        return {
            '@type': 'MessageCard',
            '@context': 'http://schema.org/extensions',
            'themeColor': self.RECOVERY_COLOR,
            'summary': f"{service_name} recovered in "
                       f"{', '.join(env.env_name for env in recovered_envs)}",
            'sections': [
                {
                    'activityTitle': f'✅ Service Recovered: **{service_name}**',
                    'activitySubtitle': f'Recovered in **{len(recovered_envs)} '
                                        f'environment{"s" if len(recovered_envs) > 1 else ""}**',
                    'facts': facts,
                    'markdown': True,
                }
            ],
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """获取配置摘要（用于调试和监控）"""
        return {
            'name': self.name,
            'type': 'teams',
            'url': self.url[:50],
            'timeout': self.get_timeout(),
            'max_retries': self.max_retries,
            'retry_delay': self.retry_delay,
        }

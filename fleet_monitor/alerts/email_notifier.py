"""邮件通知器实现"""

import asyncio
import re
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from typing import Dict, Any, List

import aiosmtplib

from .base import BaseNotifier, describe_status_code
from ..models.health_check import FailingEnv, RecoveredEnv
from ..utils.exceptions import NotifierConfigError, NotifierSendError
from ..utils.log_manager import get_logger


DEFAULT_DOWN_SUBJECT = '🚨 CRITICAL: {{service_name}} is DOWN ({{env_names}})'
DEFAULT_RECOVERY_SUBJECT = '✅ RECOVERED: {{service_name}} ({{env_names}})'

DEFAULT_DOWN_BODY = """服务健康监控告警通知

服务名称: {{service_name}}
发生时间: {{timestamp}}
故障环境:
{{env_lines}}

同一服务和环境在24小时内不会重复告警，恢复后会另行通知。

---
此邮件由集群健康监控系统自动发送，请勿回复。
"""

DEFAULT_RECOVERY_BODY = """服务恢复通知

服务名称: {{service_name}}
恢复时间: {{timestamp}}
恢复环境:
{{env_lines}}

---
此邮件由集群健康监控系统自动发送，请勿回复。
"""


class EmailNotifier(BaseNotifier):
    """邮件通知器，通过SMTP协议发送分组告警邮件"""

    EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化邮件通知器

        Args:
            name: 通知器名称
            config: 通知器配置
        """
        super().__init__(name, config)
        self.logger = get_logger(f'notifier.email.{self.name}')

        # SMTP配置
        self.smtp_server = config.get('smtp_server', '')
        self.smtp_port = config.get('smtp_port', 587)
        self.username = config.get('username', '')
        self.password = config.get('password', '')
        self.use_tls = config.get('use_tls', False)
        self.start_tls = config.get('start_tls', True)

        # 邮件配置
        self.from_email = config.get('from_email', self.username)
        self.from_name = config.get('from_name', 'Fleet Monitor')
        self.to_emails = config.get('to_emails', [])
        self.cc_emails = config.get('cc_emails', [])

        # 模板配置
        self.down_subject_template = config.get('down_subject_template', DEFAULT_DOWN_SUBJECT)
        self.down_body_template = config.get('down_body_template', DEFAULT_DOWN_BODY)
        self.recovery_subject_template = config.get('recovery_subject_template',
                                                    DEFAULT_RECOVERY_SUBJECT)
        self.recovery_body_template = config.get('recovery_body_template',
                                                 DEFAULT_RECOVERY_BODY)

        # 重试配置
        self.max_retries = config.get('max_retries', 2)
        self.retry_delay = config.get('retry_delay', 2.0)
        self.retry_backoff = config.get('retry_backoff', 2.0)

        if not self.validate_config():
            raise NotifierConfigError(f"邮件通知器配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        if not self.smtp_server:
            self.logger.error(f"邮件通知器 {self.name} 缺少SMTP服务器配置")
            return False

        if not self.from_email:
            self.logger.error(f"邮件通知器 {self.name} 缺少发件人邮箱配置")
            return False

        if not self.to_emails:
            self.logger.error(f"邮件通知器 {self.name} 缺少收件人邮箱配置")
            return False

        for email in self.to_emails + self.cc_emails + [self.from_email]:
            if not self.EMAIL_PATTERN.match(email):
                self.logger.error(f"邮件通知器 {self.name} 邮箱格式无效: {email}")
                return False

        if not isinstance(self.smtp_port, int) or self.smtp_port <= 0:
            self.logger.error(f"邮件通知器 {self.name} SMTP端口无效: {self.smtp_port}")
            return False

        if self.use_tls and self.start_tls:
            self.logger.error(f"邮件通知器 {self.name} 不能同时启用 use_tls 和 start_tls")
            return False

        return True

    async def send_down_alert(self, service_name: str, failing_envs: List[FailingEnv]) -> bool:
        env_lines = '\n'.join(
            f'  - {env.env_name}: {describe_status_code(env.status_code)} ({env.url})'
            for env in failing_envs
        )
        template_vars = self._template_vars(service_name,
                                            [env.env_name for env in failing_envs], env_lines)
        subject = self.render_template(self.down_subject_template, template_vars)
        body = self.render_template(self.down_body_template, template_vars)
        return await self._send_with_retry(subject, body)

    async def send_recovery_alert(self, service_name: str,
                                  recovered_envs: List[RecoveredEnv]) -> bool:
        env_lines = '\n'.join(f'  - {env.env_name} ({env.url})' for env in recovered_envs)
        template_vars = self._template_vars(service_name,
                                            [env.env_name for env in recovered_envs], env_lines)
        subject = self.render_template(self.recovery_subject_template, template_vars)
        body = self.render_template(self.recovery_body_template, template_vars)
        return await self._send_with_retry(subject, body)

    @staticmethod
    def _template_vars(service_name: str, env_names: List[str],
                       env_lines: str) -> Dict[str, str]:
        return {
            'service_name': service_name,
            'env_names': ', '.join(env_names),
            'env_count': str(len(env_names)),
            'env_lines': env_lines,
            'timestamp': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        }

    @staticmethod
    def render_template(template_str: str, template_vars: Dict[str, str]) -> str:
        """使用 {{variable}} 语法渲染模板"""
        rendered = template_str
        for key, value in template_vars.items():
            rendered = rendered.replace(f'{{{{{key}}}}}', value)
        return rendered

    async def _send_with_retry(self, subject: str, body: str) -> bool:
        """
        Raises:
            NotifierSendError: 所有重试均失败
        """
        self.logger.info(f"开始发送邮件: {subject}")

        for attempt in range(self.max_retries + 1):
            try:
                await self._send_email(subject, body)
                self.logger.info(
                    f"邮件发送成功: {self.from_email} -> {', '.join(self.to_emails)}")
                return True

            except Exception as e:
                self.logger.warning(
                    f"邮件通知器 {self.name} 发送失败 "
                    f"(尝试 {attempt + 1}/{self.max_retries + 1}): {e}")

                if attempt < self.max_retries:
                    delay = self.retry_delay * (self.retry_backoff ** attempt)
                    await asyncio.sleep(delay)
                else:
                    self.logger.error(f"邮件通知器 {self.name} 所有重试均失败，放弃发送")
                    raise NotifierSendError(f"邮件发送失败: {e}",
                                            notifier_name=self.name, cause=e)

        return False

    async def _send_email(self, subject: str, body: str) -> None:
        email_msg = self._create_email_message(subject, body)

        smtp_kwargs = {
            'hostname': self.smtp_server,
            'port': self.smtp_port,
            'timeout': self.get_timeout(),
            'use_tls': self.use_tls,
            'start_tls': self.start_tls,
        }
        if self.username:
            smtp_kwargs['username'] = self.username
            smtp_kwargs['password'] = self.password

        await aiosmtplib.send(email_msg, **smtp_kwargs)

    def _create_email_message(self, subject: str, body: str) -> MIMEMultipart:
        email_msg = MIMEMultipart()
        email_msg['From'] = formataddr((self.from_name, self.from_email))
        email_msg['To'] = ', '.join(self.to_emails)

        if self.cc_emails:
            email_msg['Cc'] = ', '.join(self.cc_emails)

        email_msg['Subject'] = subject
        email_msg.attach(MIMEText(body, 'plain', 'utf-8'))

        return email_msg

    def get_config_summary(self) -> Dict[str, Any]:
        """获取配置摘要（用于调试和监控）"""
        return {
            'name': self.name,
            'type': 'email',
            'smtp_server': self.smtp_server,
            'smtp_port': self.smtp_port,
            'from_email': self.from_email,
            'to_emails_count': len(self.to_emails),
            'timeout': self.get_timeout(),
            'max_retries': self.max_retries,
        }

"""通知器基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List

from ..models.health_check import FailingEnv, RecoveredEnv


class BaseNotifier(ABC):
    """通知器抽象基类

    DOWN 与 RECOVERY 告警都按服务分组发送，一次调用包含该服务的全部环境。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化通知器

        Args:
            name: 通知器名称
            config: 通知器配置参数
        """
        self.name = name
        self.config = config
        self.notifier_type = self.__class__.__name__.replace('Notifier', '').lower()

        # 子类按各自的重试策略覆盖
        self.max_retries = 0
        self.retry_delay = 0.0
        self.retry_backoff = 2.0

    @abstractmethod
    async def send_down_alert(self, service_name: str, failing_envs: List[FailingEnv]) -> bool:
        """
        发送服务故障告警

        Args:
            service_name: 服务名称
            failing_envs: 新出现故障的环境列表

        Returns:
            bool: 发送是否成功
        """
        pass

    @abstractmethod
    async def send_recovery_alert(self, service_name: str,
                                  recovered_envs: List[RecoveredEnv]) -> bool:
        """
        发送服务恢复通知

        Args:
            service_name: 服务名称
            recovered_envs: 恢复的环境列表

        Returns:
            bool: 发送是否成功
        """
        pass

    @abstractmethod
    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        pass

    def get_timeout(self) -> int:
        """
        获取超时时间配置

        Returns:
            int: 超时时间（秒）
        """
        return self.config.get('timeout', 10)

    def get_retry_budget(self) -> float:
        """
        一次发送在最坏情况下的耗时（秒）

        每次尝试都等满超时，并加上各次重试前的退避等待。
        """
        waits = sum(self.retry_delay * self.retry_backoff ** attempt
                    for attempt in range(self.max_retries))
        return (self.max_retries + 1) * self.get_timeout() + waits


def describe_status_code(status_code: int) -> str:
    """状态码为 0 时表示超时或无响应"""
    return 'Timeout' if status_code == 0 else str(status_code)

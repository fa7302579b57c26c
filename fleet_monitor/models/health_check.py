"""健康检查相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProbeStatus(str, Enum):
    """端点探测状态"""
    UP = 'UP'
    DOWN = 'DOWN'


@dataclass(frozen=True)
class Endpoint:
    """被监控的端点：一个服务在一个环境中的健康检查地址"""
    service_id: str
    service_name: str
    env_name: str
    url: str


@dataclass(frozen=True)
class ProbeOutcome:
    """单次探测结果，status_code 为 0 表示没有收到HTTP响应"""
    service_id: str
    service_name: str
    env_name: str
    url: str
    status: ProbeStatus
    status_code: int
    duration_ms: int
    timestamp: datetime = field(default_factory=utc_now)
    error_message: Optional[str] = None

    @classmethod
    def down(cls, endpoint: Endpoint, duration_ms: int = 0,
             error_message: Optional[str] = None) -> 'ProbeOutcome':
        """为未收到响应的端点构造 DOWN 结果"""
        return cls(
            service_id=endpoint.service_id,
            service_name=endpoint.service_name,
            env_name=endpoint.env_name,
            url=endpoint.url,
            status=ProbeStatus.DOWN,
            status_code=0,
            duration_ms=duration_ms,
            error_message=error_message
        )

    @property
    def is_up(self) -> bool:
        return self.status is ProbeStatus.UP


@dataclass(frozen=True)
class FailingEnv:
    """DOWN 告警中的单个环境"""
    env_name: str
    url: str
    status_code: int


@dataclass(frozen=True)
class RecoveredEnv:
    """RECOVERY 告警中的单个环境"""
    env_name: str
    url: str


@dataclass
class ScanSummary:
    """一次扫描的汇总结果"""
    total: int
    up: int
    down: int
    down_endpoints: List[ProbeOutcome] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_outcomes(cls, outcomes: List[ProbeOutcome]) -> 'ScanSummary':
        """根据完整的探测结果列表构建汇总，与告警抑制无关"""
        down_endpoints = [outcome for outcome in outcomes if not outcome.is_up]
        return cls(
            total=len(outcomes),
            up=len(outcomes) - len(down_endpoints),
            down=len(down_endpoints),
            down_endpoints=down_endpoints
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': f'Checked {self.total} endpoints',
            'total': self.total,
            'up': self.up,
            'down': self.down,
            'downServices': [
                {
                    'service': outcome.service_name,
                    'env': outcome.env_name,
                    'statusCode': outcome.status_code,
                }
                for outcome in self.down_endpoints
            ],
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class ScanResult:
    """触发一次健康检查的返回结果：completed 或 skipped"""
    status: str
    summary: Optional[ScanSummary] = None
    timestamp: datetime = field(default_factory=utc_now)

    COMPLETED = 'completed'
    SKIPPED = 'skipped'

    @classmethod
    def completed(cls, summary: ScanSummary) -> 'ScanResult':
        return cls(status=cls.COMPLETED, summary=summary)

    @classmethod
    def skipped(cls) -> 'ScanResult':
        return cls(status=cls.SKIPPED)

    @property
    def is_skipped(self) -> bool:
        return self.status == self.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        if self.summary is None:
            return {
                'status': self.status,
                'message': 'Health check already ran recently, skipped',
                'timestamp': self.timestamp.isoformat(),
            }
        payload = {'status': self.status}
        payload.update(self.summary.to_dict())
        return payload

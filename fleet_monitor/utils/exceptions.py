"""自定义异常类和错误代码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举，千位表示类别"""
    UNKNOWN_ERROR = 1000

    # 配置
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002

    # 探测
    PROBE_CONNECTION_ERROR = 3000
    PROBE_TIMEOUT = 3001
    PROBE_INVALID_RESPONSE = 3002
    CLASSIFIER_NOT_FOUND = 3003

    # 通知
    NOTIFIER_CONFIG_ERROR = 4000
    NOTIFIER_SEND_ERROR = 4001

    # 调度
    SCHEDULER_ERROR = 5000
    TASK_EXECUTION_ERROR = 5001

    # 状态存储
    STATE_STORE_ERROR = 6000
    STATE_STORE_TIMEOUT = 6001
    STATE_STORE_UNAVAILABLE = 6002


def _merge_details(kwargs: Dict[str, Any], **fields) -> Dict[str, Any]:
    """把子类的上下文字段并入 details，值为空的字段忽略"""
    details = dict(kwargs.pop('details', None) or {})
    details.update({key: value for key, value in fields.items() if value})
    return details


class FleetMonitorError(Exception):
    """
    集群健康监控基础异常类

    Attributes:
        error_code: 错误代码
        details: 附加的上下文信息
        cause: 原始异常
        recoverable: 下一轮检查是否可能自行恢复
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': None,
            'traceback': None,
        }
        if self.cause:
            data['cause'] = str(self.cause)
            data['traceback'] = ''.join(traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__))
        return data

    def format_error(self) -> str:
        """格式化为单行日志文本"""
        parts = [f"[{self.error_code.name}] {self.message}"]
        if self.details:
            parts.append("(详情: " + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")")
        if self.cause:
            parts.append(f"(原因: {self.cause})")
        return ' '.join(parts)


class ConfigError(FleetMonitorError):
    """配置相关异常"""

    def __init__(self, message: str,
                 error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
                 config_path: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, config_path=config_path)
        super().__init__(message, error_code, details, **kwargs)


class ProbeError(FleetMonitorError):
    """端点探测相关异常"""

    def __init__(self, message: str,
                 error_code: ErrorCode = ErrorCode.PROBE_CONNECTION_ERROR,
                 service_name: Optional[str] = None,
                 env_name: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, service_name=service_name, env_name=env_name)
        super().__init__(message, error_code, details, **kwargs)


class StateStoreError(FleetMonitorError):
    """告警状态存储相关异常"""

    def __init__(self, message: str,
                 error_code: ErrorCode = ErrorCode.STATE_STORE_ERROR,
                 operation: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, operation=operation)
        super().__init__(message, error_code, details, **kwargs)


class NotifierError(FleetMonitorError):
    """通知器相关异常"""

    def __init__(self, message: str,
                 error_code: ErrorCode = ErrorCode.NOTIFIER_SEND_ERROR,
                 notifier_name: Optional[str] = None, **kwargs):
        details = _merge_details(kwargs, notifier_name=notifier_name)
        super().__init__(message, error_code, details, **kwargs)


class NotifierConfigError(NotifierError):
    """通知器配置异常，需要修改配置后才能恢复"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        kwargs.setdefault('recoverable', False)
        super().__init__(message, ErrorCode.NOTIFIER_CONFIG_ERROR,
                         notifier_name=notifier_name, **kwargs)


class NotifierSendError(NotifierError):
    """通知发送异常"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        super().__init__(message, ErrorCode.NOTIFIER_SEND_ERROR,
                         notifier_name=notifier_name, **kwargs)


class SchedulerError(FleetMonitorError):
    """调度器相关异常"""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
                 **kwargs):
        super().__init__(message, error_code, **kwargs)

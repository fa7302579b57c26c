"""异常类测试"""

from datetime import datetime

from fleet_monitor.utils.exceptions import (
    FleetMonitorError,
    ErrorCode,
    ConfigError,
    ProbeError,
    StateStoreError,
    NotifierError,
    NotifierConfigError,
    NotifierSendError,
    SchedulerError
)


class TestErrorCode:
    """错误代码测试"""

    def test_error_code_values(self):
        """测试错误代码值"""
        assert ErrorCode.UNKNOWN_ERROR.value == 1000
        assert ErrorCode.CONFIG_FILE_NOT_FOUND.value == 2000
        assert ErrorCode.CLASSIFIER_NOT_FOUND.value == 3003
        assert ErrorCode.NOTIFIER_SEND_ERROR.value == 4001
        assert ErrorCode.STATE_STORE_ERROR.value == 6000


class TestFleetMonitorError:
    """FleetMonitorError基础异常测试"""

    def test_basic_error_creation(self):
        """测试基础错误创建"""
        error = FleetMonitorError("测试错误")

        assert str(error) == "测试错误"
        assert error.message == "测试错误"
        assert error.error_code == ErrorCode.UNKNOWN_ERROR
        assert error.details == {}
        assert error.cause is None
        assert error.recoverable is True
        assert isinstance(error.timestamp, datetime)

    def test_to_dict(self):
        """测试转换为字典"""
        cause = ConnectionError("连接失败")
        error = FleetMonitorError(
            "测试错误",
            ErrorCode.STATE_STORE_UNAVAILABLE,
            details={"store": "redis"},
            cause=cause,
            recoverable=False
        )

        error_dict = error.to_dict()

        assert error_dict["error_code"] == ErrorCode.STATE_STORE_UNAVAILABLE.value
        assert error_dict["error_name"] == "STATE_STORE_UNAVAILABLE"
        assert error_dict["details"] == {"store": "redis"}
        assert error_dict["recoverable"] is False
        assert error_dict["cause"] == "连接失败"

    def test_format_error(self):
        """测试格式化错误信息"""
        error = FleetMonitorError(
            "测试错误",
            ErrorCode.PROBE_TIMEOUT,
            details={"env": "Prod"},
            cause=ValueError("原始错误")
        )

        formatted = error.format_error()

        assert "[PROBE_TIMEOUT] 测试错误" in formatted
        assert "详情: env=Prod" in formatted
        assert "原因: 原始错误" in formatted


class TestSubclasses:
    """异常子类测试"""

    def test_config_error(self):
        """测试配置错误"""
        error = ConfigError("配置无效", config_path="/etc/fleet.yaml")

        assert isinstance(error, FleetMonitorError)
        assert error.error_code == ErrorCode.CONFIG_VALIDATION_ERROR
        assert error.details["config_path"] == "/etc/fleet.yaml"

    def test_config_error_merges_details(self):
        """测试配置错误同时传入details和config_path"""
        error = ConfigError("配置无效", config_path="a.yaml", details={"key": "value"})

        assert error.details == {"key": "value", "config_path": "a.yaml"}

    def test_probe_error(self):
        """测试探测错误"""
        error = ProbeError("超时", ErrorCode.PROBE_TIMEOUT,
                           service_name="Crop Service", env_name="Dev1")

        assert error.details == {"service_name": "Crop Service", "env_name": "Dev1"}

    def test_state_store_error(self):
        """测试状态存储错误"""
        error = StateStoreError("连接失败", operation="has_down_flag")

        assert error.error_code == ErrorCode.STATE_STORE_ERROR
        assert error.details["operation"] == "has_down_flag"

    def test_notifier_errors(self):
        """测试通知器错误"""
        config_error = NotifierConfigError("缺少URL", notifier_name="ops-teams")
        send_error = NotifierSendError("发送失败", notifier_name="ops-teams")

        assert isinstance(config_error, NotifierError)
        assert config_error.error_code == ErrorCode.NOTIFIER_CONFIG_ERROR
        assert config_error.recoverable is False
        assert send_error.error_code == ErrorCode.NOTIFIER_SEND_ERROR
        assert send_error.recoverable is True
        assert send_error.details["notifier_name"] == "ops-teams"

    def test_scheduler_error(self):
        """测试调度器错误"""
        error = SchedulerError("调度失败")

        assert error.error_code == ErrorCode.SCHEDULER_ERROR

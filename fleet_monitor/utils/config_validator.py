"""配置验证工具"""

from typing import Dict, Any
from urllib.parse import urlparse

from .exceptions import ConfigError


SUPPORTED_STORE_TYPES = ['redis', 'memory']
SUPPORTED_NOTIFIER_TYPES = ['teams', 'email']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _is_http_url(url: Any) -> bool:
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_service_config(service_id: str, config: Dict[str, Any]) -> None:
        """
        验证服务配置

        Args:
            service_id: 服务标识
            config: 服务配置，包含 name 和 environments 列表

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"服务 '{service_id}' 的配置必须是字典类型")

        name = config.get('name', service_id)
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"服务 '{service_id}' 的名称必须是非空字符串")

        environments = config.get('environments')
        if not isinstance(environments, list) or not environments:
            raise ConfigError(f"服务 '{service_id}' 必须配置至少一个环境 (environments)")

        seen = set()
        for env in environments:
            if not isinstance(env, dict):
                raise ConfigError(f"服务 '{service_id}' 的环境配置必须是字典类型")

            env_name = env.get('name')
            if not isinstance(env_name, str) or not env_name.strip():
                raise ConfigError(f"服务 '{service_id}' 存在缺少名称的环境")

            if env_name in seen:
                raise ConfigError(f"服务 '{service_id}' 的环境名称重复: {env_name}")
            seen.add(env_name)

            if not _is_http_url(env.get('url')):
                raise ConfigError(
                    f"服务 '{service_id}' 环境 '{env_name}' 的URL无效: {env.get('url')}")

    @staticmethod
    def validate_notifier_config(notifier_config: Dict[str, Any]) -> None:
        """
        验证通知器配置

        Args:
            notifier_config: 通知器配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(notifier_config, dict):
            raise ConfigError("通知器配置必须是字典类型")

        for field in ['name', 'type']:
            if field not in notifier_config:
                raise ConfigError(f"通知器配置缺少必需的配置项: {field}")

        notifier_type = notifier_config.get('type')
        if notifier_type not in SUPPORTED_NOTIFIER_TYPES:
            raise ConfigError(
                f"通知器 '{notifier_config['name']}' 的类型 '{notifier_type}' 不受支持。"
                f"支持的类型: {SUPPORTED_NOTIFIER_TYPES}")

        if notifier_type == 'teams' and not _is_http_url(notifier_config.get('url')):
            raise ConfigError(f"通知器 '{notifier_config['name']}' 的URL无效")

    @staticmethod
    def validate_state_store_config(store_config: Dict[str, Any]) -> None:
        """
        验证告警状态存储配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(store_config, dict):
            raise ConfigError("state_store配置必须是字典类型")

        store_type = store_config.get('type', 'memory')
        if store_type not in SUPPORTED_STORE_TYPES:
            raise ConfigError(
                f"状态存储类型 '{store_type}' 不受支持。支持的类型: {SUPPORTED_STORE_TYPES}")

        for key in ['operation_timeout', 'lock_window', 'lock_ttl']:
            value = store_config.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ConfigError(f"state_store.{key} 必须是正数")

        lock_window = store_config.get('lock_window')
        lock_ttl = store_config.get('lock_ttl')
        if lock_window is not None and lock_ttl is not None and lock_ttl < lock_window:
            raise ConfigError("state_store.lock_ttl 不能小于 lock_window")

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        for key in ['check_interval', 'down_flag_ttl']:
            value = global_config.get(key)
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise ConfigError(f"{key} 必须是正整数")

        for key in ['probe_timeout', 'notify_timeout']:
            value = global_config.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ConfigError(f"{key} 必须是正数")

        max_concurrent = global_config.get('max_concurrent_probes')
        if max_concurrent is not None:
            if not isinstance(max_concurrent, int) or max_concurrent < 0:
                raise ConfigError("max_concurrent_probes 必须是非负整数")

        classifiers = global_config.get('body_classifiers')
        if classifiers is not None:
            if not isinstance(classifiers, list) or not all(
                    isinstance(name, str) for name in classifiers):
                raise ConfigError("body_classifiers 必须是字符串列表")

        log_level = global_config.get('log_level')
        if log_level is not None and log_level not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

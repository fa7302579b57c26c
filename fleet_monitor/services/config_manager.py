"""配置管理器"""

import os
import yaml
from typing import Dict, Any, List, Optional

from .monitor_scheduler import MonitorScheduler
from ..checkers.classifiers import classifier_registry
from ..models.health_check import Endpoint
from ..stores.base import BaseAlertStateStore
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.config_validator import ConfigValidator
from ..utils.log_manager import get_logger


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        if not os.path.exists(self.config_path):
            self.logger.error(f"配置文件不存在: {self.config_path}")
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              error_code=ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", error_code=ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except PermissionError as e:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path, cause=e)
        except OSError as e:
            self.logger.error(f"读取配置文件失败: {e}")
            raise ConfigError(f"读取配置文件失败: {e}", config_path=self.config_path, cause=e)

        if config is None:
            self.logger.error("配置文件为空")
            raise ConfigError("配置文件为空", config_path=self.config_path)

        self._validate_config(config)

        endpoints_count = sum(
            len(service.get('environments', []))
            for service in config.get('services', {}).values())
        self.logger.info(
            f"配置验证成功，包含 {len(config.get('services', {}))} 个服务、"
            f"{endpoints_count} 个端点和 {len(config.get('notifiers', []))} 个通知器")

        old_config = self.config
        self.config = config
        self.last_modified = os.path.getmtime(self.config_path)

        if old_config:
            self._log_config_changes(old_config, config)

        return self.config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'])
            self._validate_body_classifiers(config['global'])

        if 'state_store' in config:
            ConfigValidator.validate_state_store_config(config['state_store'])

        services = config.get('services')
        if not isinstance(services, dict) or not services:
            raise ConfigError("services配置必须是非空字典")

        for service_id, service_config in services.items():
            ConfigValidator.validate_service_config(service_id, service_config)

        if 'notifiers' in config:
            if not isinstance(config['notifiers'], list):
                raise ConfigError("notifiers配置必须是列表类型")

            for notifier_config in config['notifiers']:
                ConfigValidator.validate_notifier_config(notifier_config)

        self._validate_schedule(config.get('global') or {}, config.get('state_store') or {})

    @staticmethod
    def _validate_schedule(global_config: Dict[str, Any],
                           state_store_config: Dict[str, Any]) -> None:
        """调度间隔不能短于运行锁窗口，否则调度器自己的触发会被跳过"""
        check_interval = global_config.get('check_interval',
                                            MonitorScheduler.DEFAULT_CHECK_INTERVAL)
        lock_window = state_store_config.get('lock_window',
                                             BaseAlertStateStore.DEFAULT_LOCK_WINDOW)
        if check_interval < lock_window:
            raise ConfigError(
                f"check_interval ({check_interval}s) 不能小于 state_store.lock_window "
                f"({lock_window}s)",
                details={'check_interval': check_interval, 'lock_window': lock_window})

    @staticmethod
    def _validate_body_classifiers(global_config: Dict[str, Any]) -> None:
        """响应体分类器必须已注册"""
        supported = classifier_registry.get_supported_names()
        for name in global_config.get('body_classifiers', []):
            if name not in supported:
                raise ConfigError(
                    f"不支持的响应体分类器: '{name}'，支持的分类器: {', '.join(supported)}",
                    error_code=ErrorCode.CLASSIFIER_NOT_FOUND)

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global') or {}

    def get_services_config(self) -> Dict[str, Any]:
        return self.config.get('services') or {}

    def get_state_store_config(self) -> Dict[str, Any]:
        return self.config.get('state_store') or {}

    def get_notifiers_config(self) -> List[Dict[str, Any]]:
        return self.config.get('notifiers') or []

    def get_endpoints(self) -> List[Endpoint]:
        """
        展开服务配置为端点列表，保持配置文件中的顺序

        Returns:
            List[Endpoint]: 端点列表
        """
        endpoints = []
        for service_id, service_config in self.get_services_config().items():
            service_name = service_config.get('name', service_id)
            for env in service_config.get('environments', []):
                endpoints.append(Endpoint(
                    service_id=service_id,
                    service_name=service_name,
                    env_name=env['name'],
                    url=env['url']
                ))
        return endpoints

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        try:
            current_modified = os.path.getmtime(self.config_path)
        except OSError:
            return False
        return self.last_modified is None or current_modified > self.last_modified

    def reload_config(self) -> Dict[str, Any]:
        """
        重新加载配置文件

        Raises:
            ConfigError: 配置重新加载失败
        """
        self.logger.info("重新加载配置文件")
        return self.load_config()

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        """记录服务和通知器配置的变更"""
        old_services = old_config.get('services', {})
        new_services = new_config.get('services', {})

        added_services = set(new_services) - set(old_services)
        if added_services:
            self.logger.info(f"新增服务: {', '.join(sorted(added_services))}")

        removed_services = set(old_services) - set(new_services)
        if removed_services:
            self.logger.info(f"删除服务: {', '.join(sorted(removed_services))}")

        for service_id in set(old_services) & set(new_services):
            if old_services[service_id] != new_services[service_id]:
                self.logger.info(f"服务配置已修改: {service_id}")

        if old_config.get('notifiers', []) != new_config.get('notifiers', []):
            self.logger.info("通知器配置已修改")

        if old_config.get('global', {}) != new_config.get('global', {}):
            self.logger.info("全局配置已修改")

"""
日志管理器模块

提供统一的日志记录功能，支持控制台和轮转文件输出。
配置变更会同步应用到已经创建的日志记录器。
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict, Any, List
from enum import Enum


class LogLevel(Enum):
    """日志级别枚举"""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class LogManager:
    """
    日志管理器类

    所有组件通过 get_logger 获取以 ``fleet_monitor.`` 为前缀的日志记录器，
    由管理器统一挂载处理器。
    """

    _instance: Optional['LogManager'] = None
    _initialized: bool = False

    ROOT_NAME = 'fleet_monitor'

    FILE_FORMAT = ('%(asctime)s - %(name)s - %(levelname)s - '
                   '[%(filename)s:%(lineno)d] - %(message)s')
    CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

    # 配置键 -> 实例属性
    SETTINGS = {
        'max_file_size': '_max_file_size',
        'backup_count': '_backup_count',
        'enable_console': '_enable_console',
        'enable_file': '_enable_file',
        'format': '_default_format',
        'console_format': '_console_format',
        'date_format': '_date_format',
    }

    def __new__(cls) -> 'LogManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._loggers: Dict[str, logging.Logger] = {}
        self._log_level = LogLevel.INFO
        self._log_file: Optional[str] = None
        self._max_file_size = 10 * 1024 * 1024
        self._backup_count = 5
        self._enable_console = True
        self._enable_file = False
        self._default_format = self.FILE_FORMAT
        self._console_format = self.CONSOLE_FORMAT
        self._date_format = self.DATE_FORMAT
        self._initialized = True

    @staticmethod
    def parse_level(value: Any) -> LogLevel:
        """将字符串转换为日志级别，大小写不敏感"""
        level_name = str(value).upper()
        try:
            return LogLevel[level_name]
        except KeyError:
            raise ValueError(f"无效的日志级别: {level_name}") from None

    def configure(self, config: Dict[str, Any]) -> None:
        """
        应用日志配置

        识别 log_level、log_file 以及 SETTINGS 中列出的键，其余键忽略。
        设置 log_file 会同时打开文件输出。

        Raises:
            ValueError: 日志级别无效
        """
        if 'log_level' in config:
            self._log_level = self.parse_level(config['log_level'])

        if config.get('log_file'):
            self._log_file = config['log_file']
            self._enable_file = True

        for key, attr in self.SETTINGS.items():
            if key in config:
                setattr(self, attr, config[key])

        for logger in self._loggers.values():
            self._attach_handlers(logger)

    def get_logger(self, name: str) -> logging.Logger:
        """
        获取指定名称的日志记录器

        Args:
            name: 组件名称，例如 ``prober`` 或 ``notifier.teams.ops``

        Returns:
            配置好的日志记录器实例
        """
        full_name = name if name.startswith(self.ROOT_NAME) else f'{self.ROOT_NAME}.{name}'
        if full_name in self._loggers:
            return self._loggers[full_name]

        logger = logging.getLogger(full_name)
        self._attach_handlers(logger)

        # 防止日志向上传播导致重复输出
        logger.propagate = False

        self._loggers[full_name] = logger
        return logger

    def _build_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []

        if self._enable_console:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(self._console_format, self._date_format))
            handlers.append(handler)

        if self._enable_file and self._log_file:
            Path(self._log_file).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                self._log_file,
                maxBytes=self._max_file_size,
                backupCount=self._backup_count,
                encoding='utf-8'
            )
            handler.setFormatter(logging.Formatter(self._default_format, self._date_format))
            handlers.append(handler)

        for handler in handlers:
            handler.setLevel(self._log_level.value)
        return handlers

    @staticmethod
    def _detach_handlers(logger: logging.Logger) -> None:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def _attach_handlers(self, logger: logging.Logger) -> None:
        """按当前配置为日志记录器重建处理器"""
        self._detach_handlers(logger)
        logger.setLevel(self._log_level.value)
        for handler in self._build_handlers():
            logger.addHandler(handler)

    def set_level(self, level: LogLevel) -> None:
        """调整所有已创建日志记录器及其处理器的级别"""
        self._log_level = level
        for logger in self._loggers.values():
            logger.setLevel(level.value)
            for handler in logger.handlers:
                handler.setLevel(level.value)

    @property
    def log_level(self) -> LogLevel:
        return self._log_level

    def cleanup(self) -> None:
        """关闭所有处理器，日志文件在此之后可以安全读取"""
        for logger in self._loggers.values():
            self._detach_handlers(logger)
        self._loggers.clear()


# 全局日志管理器实例
log_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """获取日志记录器的便捷函数"""
    return log_manager.get_logger(name)


def configure_logging(config: Dict[str, Any]) -> None:
    """配置日志系统的便捷函数"""
    log_manager.configure(config)

"""工具模块"""

from .exceptions import (FleetMonitorError, ConfigError, ProbeError, StateStoreError,
                         NotifierError)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'FleetMonitorError', 'ConfigError', 'ProbeError', 'StateStoreError', 'NotifierError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]

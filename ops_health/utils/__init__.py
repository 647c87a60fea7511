"""工具模块"""

from .exceptions import (
    ErrorCode, OpsHealthError, ConfigError, ProbeError, ActionError, AlertError,
    AlertConfigError, AlertSendError, SchedulerError, LockError
)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'ErrorCode', 'OpsHealthError', 'ConfigError', 'ProbeError', 'ActionError',
    'AlertError', 'AlertConfigError', 'AlertSendError', 'SchedulerError', 'LockError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]

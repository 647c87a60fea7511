"""自定义异常类和错误代码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    INITIALIZATION_ERROR = 1001
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    CONFIG_RELOAD_ERROR = 2003

    # 探测错误 (3000-3999)
    PROBE_CONFIG_ERROR = 3000
    PROBE_TYPE_UNSUPPORTED = 3001

    # 修复动作错误 (4000-4999)
    ACTION_CONFIG_ERROR = 4000
    TARGET_NOT_FOUND = 4001
    PERMISSION_DENIED = 4002
    COMMAND_FAILED = 4003
    COMMAND_TIMEOUT = 4004

    # 告警错误 (5000-5999)
    ALERT_CONFIG_ERROR = 5000
    ALERT_SEND_ERROR = 5001
    ALERT_TIMEOUT = 5002

    # 调度错误 (6000-6999)
    SCHEDULER_ERROR = 6000

    # 运行锁错误 (7000-7999)
    LOCK_HELD = 7000
    LOCK_ERROR = 7001


class OpsHealthError(Exception):
    """运维健康引擎基础异常类"""

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
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(OpsHealthError):
    """配置相关异常，启动阶段致命"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        kwargs.setdefault('recoverable', False)
        super().__init__(message, error_code, details, **kwargs)


class ProbeError(ConfigError):
    """探测器配置异常（只在构建阶段抛出，运行期探测失败不抛异常）"""

    def __init__(
        self,
        message: str,
        target_name: Optional[str] = None,
        probe_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if target_name:
            details['target_name'] = target_name
        if probe_type:
            details['probe_type'] = probe_type
        super().__init__(message, ErrorCode.PROBE_CONFIG_ERROR, details=details, **kwargs)


class ActionError(OpsHealthError):
    """修复动作执行失败

    error_code 取值 TARGET_NOT_FOUND / PERMISSION_DENIED / COMMAND_FAILED /
    COMMAND_TIMEOUT / ACTION_CONFIG_ERROR
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.COMMAND_FAILED,
        target_name: Optional[str] = None,
        action_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if target_name:
            details['target_name'] = target_name
        if action_type:
            details['action_type'] = action_type
        super().__init__(message, error_code, details, **kwargs)


class AlertError(OpsHealthError):
    """告警相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ALERT_SEND_ERROR,
        alert_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if alert_name:
            details['alert_name'] = alert_name
        super().__init__(message, error_code, details, **kwargs)


class AlertConfigError(AlertError):
    """告警配置异常"""

    def __init__(self, message: str, alert_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_CONFIG_ERROR,
            alert_name=alert_name,
            recoverable=False,
            **kwargs
        )


class AlertSendError(AlertError):
    """告警发送异常"""

    def __init__(self, message: str, alert_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_SEND_ERROR,
            alert_name=alert_name,
            recoverable=True,
            **kwargs
        )


class SchedulerError(OpsHealthError):
    """监控调度相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        task_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if task_name:
            details['task_name'] = task_name
        super().__init__(message, error_code, details, **kwargs)


class LockError(OpsHealthError):
    """运行锁异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.LOCK_ERROR,
        lock_path: Optional[str] = None,
        holder_pid: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if lock_path:
            details['lock_path'] = lock_path
        if holder_pid is not None:
            details['holder_pid'] = holder_pid
        super().__init__(message, error_code, details, **kwargs)
        self.holder_pid = holder_pid

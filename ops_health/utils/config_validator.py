"""配置验证工具"""

from typing import Dict, Any

from .exceptions import ConfigError

SUPPORTED_PROBE_TYPES = ['tcp', 'http', 'unit', 'process', 'disk', 'pods']
SUPPORTED_ACTION_TYPES = ['systemd_restart', 'command']
SUPPORTED_ALERT_TYPES = ['email', 'http', 'log']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
VALID_LOG_FORMATS = ['text', 'json']

# 全局配置与目标级覆盖中的数值项: 名称 -> 是否必须为整数
GLOBAL_NUMBERS = {
    'check_interval': False,
    'flap_window': False,
    'restart_cooldown': False,
    'probe_timeout': False,
    'sweep_deadline': False,
    'alert_timeout': False,
    'shutdown_grace': False,
    'max_restarts': True,
    'sweep_concurrency': True,
}

TARGET_NUMBERS = {
    'check_interval': False,
    'flap_window': False,
    'restart_cooldown': False,
    'timeout': False,
    'max_restarts': True,
}

# 允许为 0 的数值项
ZERO_ALLOWED = ('restart_cooldown', 'max_restarts')


def _check_number(owner: str, key: str, value: Any, integer: bool) -> None:
    """
    检查数值配置项

    Raises:
        ConfigError: 类型错误或取值越界
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{owner} 的 {key} 必须是数字")
    if integer and not isinstance(value, int):
        raise ConfigError(f"{owner} 的 {key} 必须是整数")
    if key in ZERO_ALLOWED:
        if value < 0:
            raise ConfigError(f"{owner} 的 {key} 不能为负数")
    elif value <= 0:
        raise ConfigError(f"{owner} 的 {key} 必须是正数")


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_target_config(target_name: str, config: Dict[str, Any]) -> None:
        """
        验证目标配置

        Args:
            target_name: 目标名称
            config: 目标配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"目标 '{target_name}' 的配置必须是字典类型")

        required_fields = ['type', 'address']
        for field in required_fields:
            if field not in config:
                raise ConfigError(f"目标 '{target_name}' 缺少必需的配置项: {field}")

        probe_type = config.get('type')
        if probe_type not in SUPPORTED_PROBE_TYPES:
            raise ConfigError(
                f"目标 '{target_name}' 的类型 '{probe_type}' 不受支持。支持的类型: {SUPPORTED_PROBE_TYPES}")

        address = config.get('address')
        if not isinstance(address, str) or not address.strip():
            raise ConfigError(f"目标 '{target_name}' 的 address 必须是非空字符串")

        for key, integer in TARGET_NUMBERS.items():
            if config.get(key) is not None:
                _check_number(f"目标 '{target_name}'", key, config[key], integer)

        observe = config.get('observe_when_escalated')
        if observe is not None and not isinstance(observe, bool):
            raise ConfigError(f"目标 '{target_name}' 的 observe_when_escalated 必须是布尔值")

        if config.get('action') is not None:
            ConfigValidator.validate_action_config(target_name, config['action'])

    @staticmethod
    def validate_action_config(target_name: str, action_config: Dict[str, Any]) -> None:
        """
        验证修复动作配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(action_config, dict):
            raise ConfigError(f"目标 '{target_name}' 的 action 必须是字典类型")

        action_type = action_config.get('type')
        if action_type not in SUPPORTED_ACTION_TYPES:
            raise ConfigError(
                f"目标 '{target_name}' 的修复类型 '{action_type}' 不受支持。"
                f"支持的类型: {SUPPORTED_ACTION_TYPES}")

        if action_type == 'command':
            argv = action_config.get('argv')
            if not isinstance(argv, list) or not argv or not all(isinstance(a, str) for a in argv):
                raise ConfigError(f"目标 '{target_name}' 的 command 修复必须配置非空字符串列表 argv")

        if action_config.get('timeout') is not None:
            _check_number(f"目标 '{target_name}' 的修复动作", 'timeout',
                          action_config['timeout'], False)

    @staticmethod
    def validate_alert_config(alert_config: Dict[str, Any]) -> None:
        """
        验证告警配置

        Args:
            alert_config: 告警配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(alert_config, dict):
            raise ConfigError("告警配置必须是字典类型")

        required_fields = ['name', 'type']
        for field in required_fields:
            if field not in alert_config:
                raise ConfigError(f"告警配置缺少必需的配置项: {field}")

        alert_type = alert_config['type']
        if alert_type not in SUPPORTED_ALERT_TYPES:
            raise ConfigError(
                f"告警 '{alert_config['name']}' 的类型 '{alert_type}' 不受支持。"
                f"支持的类型: {SUPPORTED_ALERT_TYPES}")

        if alert_type == 'http' and 'url' not in alert_config:
            raise ConfigError(f"告警 '{alert_config['name']}' 缺少必需的配置项: url")
        if alert_type == 'email':
            for field in ('smtp_server', 'to_emails'):
                if field not in alert_config:
                    raise ConfigError(f"告警 '{alert_config['name']}' 缺少必需的配置项: {field}")

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        for key, integer in GLOBAL_NUMBERS.items():
            if global_config.get(key) is not None:
                _check_number('全局配置', key, global_config[key], integer)

        # 验证日志级别
        log_level = global_config.get('log_level')
        if log_level is not None and log_level not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

        log_format = global_config.get('log_format')
        if log_format is not None and log_format not in VALID_LOG_FORMATS:
            raise ConfigError(f"log_format 必须是以下值之一: {VALID_LOG_FORMATS}")

        observe = global_config.get('observe_when_escalated')
        if observe is not None and not isinstance(observe, bool):
            raise ConfigError("observe_when_escalated 必须是布尔值")

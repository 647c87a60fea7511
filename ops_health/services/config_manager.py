"""配置管理器"""

import os
import yaml
from typing import Dict, Any, Optional, List
from ..utils.exceptions import ConfigError
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
        加载YAML配置文件，验证失败时保留原有配置

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        try:
            if not os.path.exists(self.config_path):
                raise ConfigError(f"配置文件不存在: {self.config_path}",
                                  config_path=self.config_path)

            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)

            if config is None:
                raise ConfigError("配置文件为空", config_path=self.config_path)

            self.logger.debug("开始验证配置文件内容")
            self._validate_config(config)

            targets_count = len(config.get('targets') or {})
            alerts_count = len(config.get('alerts') or [])
            self.logger.info(f"配置验证成功，包含 {targets_count} 个目标和 {alerts_count} 个告警配置")

            old_config = self.config.copy() if self.config else {}
            self.config = config
            self.last_modified = os.path.getmtime(self.config_path)

            if old_config:
                self._log_config_changes(old_config, config)
            else:
                self.logger.info("首次加载配置文件")

            return self.config

        except ConfigError as e:
            self.logger.error(e.message)
            raise
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", config_path=self.config_path)
        except PermissionError:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path)
        except OSError as e:
            self.logger.error(f"读取配置文件失败: {e}")
            raise ConfigError(f"读取配置文件失败: {e}", config_path=self.config_path)

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Args:
            config: 配置字典

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'])

        if config.get('targets') is not None:
            if not isinstance(config['targets'], dict):
                raise ConfigError("targets配置必须是字典类型")

            for target_name, target_config in config['targets'].items():
                ConfigValidator.validate_target_config(target_name, target_config)

        if config.get('alerts') is not None:
            if not isinstance(config['alerts'], list):
                raise ConfigError("alerts配置必须是列表类型")

            names = set()
            for alert_config in config['alerts']:
                ConfigValidator.validate_alert_config(alert_config)
                if alert_config['name'] in names:
                    raise ConfigError(f"告警名称重复: {alert_config['name']}")
                names.add(alert_config['name'])

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global') or {}

    def get_targets_config(self) -> Dict[str, Any]:
        return self.config.get('targets') or {}

    def get_alerts_config(self) -> List[Dict[str, Any]]:
        return self.config.get('alerts') or []

    def get_target_config(self, target_name: str) -> Optional[Dict[str, Any]]:
        """
        获取指定目标的配置

        Args:
            target_name: 目标名称

        Returns:
            Optional[Dict[str, Any]]: 目标配置，如果不存在返回None
        """
        return self.get_targets_config().get(target_name)

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        try:
            if not os.path.exists(self.config_path):
                return False

            current_modified = os.path.getmtime(self.config_path)
            return self.last_modified is None or current_modified > self.last_modified

        except OSError:
            return False

    def reload_config(self) -> Dict[str, Any]:
        """
        重新加载配置文件

        Raises:
            ConfigError: 配置重新加载失败
        """
        self.logger.info("重新加载配置文件")
        return self.load_config()

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        """记录目标、告警和全局配置的变更"""
        old_targets = old_config.get('targets') or {}
        new_targets = new_config.get('targets') or {}

        added_targets = sorted(set(new_targets) - set(old_targets))
        if added_targets:
            self.logger.info(f"新增目标: {', '.join(added_targets)}")

        removed_targets = sorted(set(old_targets) - set(new_targets))
        if removed_targets:
            self.logger.info(f"删除目标: {', '.join(removed_targets)}")

        for target_name in sorted(set(old_targets) & set(new_targets)):
            if old_targets[target_name] != new_targets[target_name]:
                self.logger.info(f"目标配置已修改: {target_name}")
                self.logger.debug(f"目标 {target_name} 新配置: {new_targets[target_name]}")

        old_alerts = old_config.get('alerts') or []
        new_alerts = new_config.get('alerts') or []
        if len(old_alerts) != len(new_alerts):
            self.logger.info(f"告警配置数量变更: {len(old_alerts)} -> {len(new_alerts)}")
        elif old_alerts != new_alerts:
            self.logger.info("告警配置已修改")

        if (old_config.get('global') or {}) != (new_config.get('global') or {}):
            self.logger.info("全局配置已修改")
            self.logger.debug(f"新全局配置: {new_config.get('global')}")

"""修复动作工厂"""

from typing import Dict, Type, Any, List

from .base import BaseAction
from ..models.health_check import Target
from ..utils.exceptions import ActionError, ErrorCode


class ActionFactory:
    """修复动作工厂类，按类型名称登记并创建修复动作"""

    def __init__(self):
        self._actions: Dict[str, Type[BaseAction]] = {}

    def register_action(self, action_type: str, action_class: Type[BaseAction]):
        """
        注册修复动作类

        Raises:
            ActionError: 注册失败
        """
        if not issubclass(action_class, BaseAction):
            raise ActionError(f"修复动作类 {action_class.__name__} 必须继承自 BaseAction",
                              ErrorCode.ACTION_CONFIG_ERROR)

        if action_type in self._actions:
            raise ActionError(f"动作类型 '{action_type}' 已经注册",
                              ErrorCode.ACTION_CONFIG_ERROR)

        action_class.action_type = action_type
        self._actions[action_type] = action_class

    def create_action(self, target: Target) -> BaseAction:
        """
        根据目标的 action 配置创建修复动作

        Args:
            target: 被检查的目标（action 配置不能为空）

        Returns:
            BaseAction: 修复动作实例

        Raises:
            ActionError: 类型不支持或配置无效
        """
        config: Dict[str, Any] = dict(target.action or {})
        action_type = config.get('type')
        if not action_type:
            raise ActionError(f"目标 '{target.name}' 的修复动作缺少 'type' 配置",
                              ErrorCode.ACTION_CONFIG_ERROR, target_name=target.name,
                              recoverable=False)

        if action_type not in self._actions:
            raise ActionError(f"不支持的修复动作类型: '{action_type}'",
                              ErrorCode.ACTION_CONFIG_ERROR, target_name=target.name,
                              action_type=action_type, recoverable=False)

        action = self._actions[action_type](config)
        if not action.validate_config(target):
            raise ActionError(f"目标 '{target.name}' 的修复动作配置验证失败",
                              ErrorCode.ACTION_CONFIG_ERROR, target_name=target.name,
                              action_type=action_type, recoverable=False)
        return action

    def get_supported_types(self) -> List[str]:
        return list(self._actions.keys())

    def is_type_supported(self, action_type: str) -> bool:
        return action_type in self._actions


# 全局工厂实例
action_factory = ActionFactory()


def register_action(action_type: str):
    """
    装饰器：注册修复动作类

    Args:
        action_type: 动作类型名称
    """
    def decorator(action_class: Type[BaseAction]):
        action_factory.register_action(action_type, action_class)
        return action_class

    return decorator

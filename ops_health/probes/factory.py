"""探测器工厂"""

from typing import Dict, Type, List

from .base import BaseProbe
from ..models.health_check import Target
from ..utils.exceptions import ProbeError


class ProbeFactory:
    """探测器工厂类，按类型名称登记并创建探测器"""

    def __init__(self):
        """初始化工厂"""
        self._probes: Dict[str, Type[BaseProbe]] = {}

    def register_probe(self, probe_type: str, probe_class: Type[BaseProbe]):
        """
        注册探测器类

        Args:
            probe_type: 探测类型名称
            probe_class: 探测器类

        Raises:
            ProbeError: 注册失败
        """
        if not issubclass(probe_class, BaseProbe):
            raise ProbeError(f"探测器类 {probe_class.__name__} 必须继承自 BaseProbe")

        if probe_type in self._probes:
            raise ProbeError(f"探测类型 '{probe_type}' 已经注册了探测器")

        probe_class.probe_type = probe_type
        self._probes[probe_type] = probe_class

    def unregister_probe(self, probe_type: str):
        """
        取消注册探测器类

        Args:
            probe_type: 探测类型名称
        """
        self._probes.pop(probe_type, None)

    def create_probe(self, target: Target) -> BaseProbe:
        """
        为目标创建探测器并验证目标配置

        Args:
            target: 被检查的目标

        Returns:
            BaseProbe: 探测器实例

        Raises:
            ProbeError: 类型不支持或目标配置无效
        """
        if not target.probe_type:
            raise ProbeError(f"目标 '{target.name}' 缺少 'type' 配置",
                             target_name=target.name)

        if target.probe_type not in self._probes:
            raise ProbeError(f"不支持的探测类型: '{target.probe_type}'",
                             target_name=target.name, probe_type=target.probe_type)

        probe = self._probes[target.probe_type]()
        if not probe.validate_target(target):
            raise ProbeError(f"目标 '{target.name}' 的探测配置验证失败",
                             target_name=target.name, probe_type=target.probe_type)

        return probe

    def get_supported_types(self) -> List[str]:
        """
        获取支持的探测类型列表

        Returns:
            list: 支持的探测类型列表
        """
        return list(self._probes.keys())

    def is_type_supported(self, probe_type: str) -> bool:
        return probe_type in self._probes


# 全局工厂实例
probe_factory = ProbeFactory()


def register_probe(probe_type: str):
    """
    装饰器：注册探测器类

    Args:
        probe_type: 探测类型名称
    """
    def decorator(probe_class: Type[BaseProbe]):
        probe_factory.register_probe(probe_type, probe_class)
        return probe_class

    return decorator

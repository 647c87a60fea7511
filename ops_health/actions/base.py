"""修复动作基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from ..models.health_check import Target, RemediationAck
from ..utils.log_manager import get_logger


class BaseAction(ABC):
    """修复动作抽象基类

    remediate() 成功返回 RemediationAck，表示动作已下发，目标是否恢复
    由后续探测确认；失败抛出 ActionError。
    """

    action_type = 'base'

    def __init__(self, config: Dict[str, Any]):
        """
        初始化修复动作

        Args:
            config: 动作配置参数
        """
        self.config = config
        self.logger = get_logger(f'action.{self.action_type}')

    @abstractmethod
    async def remediate(self, target: Target) -> RemediationAck:
        """
        对目标执行一次修复动作

        Raises:
            ActionError: 目标不存在、权限不足或命令执行失败
        """
        pass

    @abstractmethod
    def validate_config(self, target: Target) -> bool:
        pass

    async def collect_context(self, target: Target) -> str:
        """
        收集升级告警附带的诊断上下文

        Returns:
            str: 诊断文本，默认为空
        """
        return ''

    def get_timeout(self) -> float:
        """
        获取命令超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.config.get('timeout', 30)

"""告警器基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from ..models.health_check import AlertMessage


class BaseAlerter(ABC):
    """告警器抽象基类"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化告警器

        Args:
            name: 告警器名称
            config: 告警器配置参数
        """
        self.name = name
        self.config = config
        self.alerter_type = self.__class__.__name__.replace('Alerter', '').lower()

    @abstractmethod
    async def send_alert(self, message: AlertMessage) -> bool:
        """
        发送告警消息

        Args:
            message: 告警消息对象

        Returns:
            bool: 发送是否成功
        """
        pass

    @abstractmethod
    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        pass

    def get_timeout(self) -> int:
        """
        获取超时时间配置

        Returns:
            int: 超时时间（秒）
        """
        return self.config.get('timeout', 30)

    def template_vars(self, message: AlertMessage) -> Dict[str, str]:
        """
        准备模板变量

        Args:
            message: 告警消息

        Returns:
            Dict[str, str]: 变量名到取值的映射
        """
        template_vars = {
            'target_name': message.target_name,
            'probe_type': message.probe_type,
            'address': message.address,
            'host': message.host,
            'status': message.status,
            'reason': message.reason,
            'attempt_count': str(message.attempt_count),
            'window': f"{message.window:g}" if message.window is not None else '未知',
            'diagnostic': message.diagnostic or '无',
            'context': message.context or '无',
            'timestamp': message.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
        }
        for key, value in message.metadata.items():
            template_vars[f'metadata_{key}'] = str(value)
        return template_vars

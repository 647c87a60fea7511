"""本地日志告警器"""

import sys
from typing import Dict, Any

from .base import BaseAlerter
from ..models.health_check import AlertMessage
from ..utils.log_manager import get_logger


def format_alert_text(message: AlertMessage) -> str:
    """把告警消息格式化为多行文本，用于本地输出和邮件正文"""
    lines = [
        f"[{message.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] "
        f"{message.status} {message.target_name} @ {message.host}",
        f"目标地址: {message.address} ({message.probe_type})",
        f"原因: {message.reason or '无'}",
    ]
    if message.window is not None:
        lines.append(f"窗口内修复次数: {message.attempt_count} / {message.window:g}s")
    if message.diagnostic:
        lines.append(f"探测诊断: {message.diagnostic}")
    if message.context:
        lines.append('')
        lines.append(message.context)
    return '\n'.join(lines)


class LogAlerter(BaseAlerter):
    """把告警写入本地日志和标准错误，无需外部依赖，不会失败"""

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self.logger = get_logger(f'alerter.log.{self.name}')
        self.stream = config.get('stream', 'stderr')

    def validate_config(self) -> bool:
        return self.stream in ('stderr', 'log')

    async def send_alert(self, message: AlertMessage) -> bool:
        text = format_alert_text(message)
        self.logger.warning(f"告警: {message.status} {message.target_name} - {message.reason}")
        if self.stream == 'stderr':
            print(text, file=sys.stderr, flush=True)
        else:
            self.logger.warning(text)
        return True

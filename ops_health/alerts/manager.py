"""告警管理器"""

import asyncio
import socket
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional

from .base import BaseAlerter
from .email_alerter import EmailAlerter
from .http_alerter import HTTPAlerter
from .log_alerter import LogAlerter, format_alert_text
from ..models.health_check import AlertMessage
from ..utils.exceptions import AlertConfigError
from ..utils.log_manager import get_logger

ALERTER_TYPES = {
    'http': HTTPAlerter,
    'email': EmailAlerter,
    'log': LogAlerter,
}

# 这些状态每次都必须送达，不参与去重
NEVER_DEDUPLICATED = ('ESCALATED', 'TEST')

# 状态翻转时清除相反状态的去重记录，保证最新状态总能送达
OPPOSITE_STATUS = {'DOWN': 'UP', 'UP': 'DOWN'}


def local_hostname() -> str:
    """获取本机完整主机名"""
    return socket.getfqdn() or socket.gethostname()


class AlertManager:
    """告警管理器，把告警并发分发到所有告警器

    dispatch() 永不抛出异常：每个告警器的发送受 alert_timeout 限制，
    发送失败或超时会在本地日志中记录完整告警内容。
    """

    def __init__(self, alert_configs: List[Dict[str, Any]], alert_timeout: float = 30,
                 dedup_window: float = 300):
        """
        初始化告警管理器

        Args:
            alert_configs: 告警配置列表
            alert_timeout: 单个告警器的发送超时（秒）
            dedup_window: 相同目标相同状态的去重时间窗（秒）

        Raises:
            AlertConfigError: 告警配置无效
        """
        self.alert_timeout = alert_timeout
        self.alerters: List[BaseAlerter] = []
        self.logger = get_logger('alert_manager')
        self.fallback_logger = get_logger('alert_fallback')

        self._alert_history: Dict[str, datetime] = {}
        self._duplicate_threshold = timedelta(seconds=dedup_window)
        self.stats = {'sent': 0, 'failed': 0, 'deduplicated': 0}

        for config in alert_configs:
            self.add_alerter(create_alerter(config))

    def add_alerter(self, alerter: BaseAlerter):
        """
        添加告警器

        Args:
            alerter: 告警器实例
        """
        if not isinstance(alerter, BaseAlerter):
            raise AlertConfigError(f"告警器必须继承自BaseAlerter: {type(alerter)}")

        self.alerters.append(alerter)
        self.logger.info(f"已添加告警器: {alerter.name} ({alerter.alerter_type})")

    def remove_alerter(self, name: str) -> bool:
        """
        移除告警器

        Returns:
            bool: 是否成功移除
        """
        for i, alerter in enumerate(self.alerters):
            if alerter.name == name:
                self.alerters.pop(i)
                self.logger.info(f"已移除告警器: {name}")
                return True
        return False

    async def dispatch(self, message: AlertMessage) -> bool:
        """
        发送告警到所有告警器

        Args:
            message: 告警消息

        Returns:
            bool: 至少一个告警器发送成功（或被去重）时为 True
        """
        if not message.host:
            message.host = local_hostname()

        if self._should_deduplicate(message):
            self.stats['deduplicated'] += 1
            self.logger.debug(f"告警去重，跳过发送: {message.target_name} {message.status}")
            return True
        self._record_alert(message)

        if not self.alerters:
            self.logger.warning("没有配置告警器，告警仅记录在本地日志")
            self._log_fallback(message, "未配置告警器")
            return False

        results = await asyncio.gather(
            *(self._send_to_alerter(alerter, message) for alerter in self.alerters))

        failed = [r for r in results if not r['success']]
        sent = len(results) - len(failed)
        self.stats['sent'] += sent
        self.stats['failed'] += len(failed)

        if sent:
            self.logger.info(
                f"告警发送成功 {sent}/{len(results)} 个告警器 "
                f"(目标: {message.target_name}, 状态: {message.status})")
        if failed:
            reasons = '; '.join(f"{r['alerter']}: {r['error']}" for r in failed)
            self._log_fallback(message, reasons)

        return sent > 0

    async def _send_to_alerter(self, alerter: BaseAlerter,
                               message: AlertMessage) -> Dict[str, Any]:
        """
        向单个告警器发送消息，限时且不抛出异常

        Returns:
            Dict[str, Any]: 发送结果
        """
        error: Optional[str] = None
        success = False
        try:
            success = await asyncio.wait_for(alerter.send_alert(message), self.alert_timeout)
            if not success:
                error = '发送返回失败'
        except asyncio.TimeoutError:
            error = f"发送超时 ({self.alert_timeout}s)"
        except Exception as e:
            error = str(e)

        if error:
            self.logger.error(f"告警器 {alerter.name} 发送失败: {error}")
        return {'alerter': alerter.name, 'success': success, 'error': error}

    def _log_fallback(self, message: AlertMessage, reason: str):
        """告警未能送达时，把完整内容写入本地日志"""
        self.fallback_logger.error(
            f"告警未送达 ({reason})，本地记录如下:\n{format_alert_text(message)}")

    def _should_deduplicate(self, message: AlertMessage) -> bool:
        if message.status in NEVER_DEDUPLICATED:
            return False

        last_alert_time = self._alert_history.get(self._alert_key(message))
        if last_alert_time is None:
            return False
        return message.timestamp - last_alert_time < self._duplicate_threshold

    def _record_alert(self, message: AlertMessage):
        self._alert_history[self._alert_key(message)] = message.timestamp
        opposite = OPPOSITE_STATUS.get(message.status)
        if opposite:
            self._alert_history.pop(f"{message.target_name}:{opposite}", None)

        current_time = datetime.now()
        expired_keys = [
            key for key, timestamp in self._alert_history.items()
            if current_time - timestamp > self._duplicate_threshold * 2
        ]
        for key in expired_keys:
            del self._alert_history[key]

    @staticmethod
    def _alert_key(message: AlertMessage) -> str:
        return f"{message.target_name}:{message.status}"

    async def test_alerts(self) -> bool:
        """
        向所有告警器发送测试告警

        Returns:
            bool: 所有告警器均发送成功
        """
        if not self.alerters:
            self.logger.warning("没有配置告警器")
            return False

        message = AlertMessage(
            target_name='ops-health-test',
            probe_type='test',
            address='-',
            status='TEST',
            reason='这是一条测试告警，用于验证告警通道是否可用'
        )
        message.host = local_hostname()

        results = await asyncio.gather(
            *(self._send_to_alerter(alerter, message) for alerter in self.alerters))
        for result in results:
            status = '成功' if result['success'] else f"失败: {result['error']}"
            self.logger.info(f"告警器 {result['alerter']} 测试{status}")
        return all(r['success'] for r in results)

    def get_alerter_names(self) -> List[str]:
        return [alerter.name for alerter in self.alerters]

    def get_alert_stats(self) -> Dict[str, Any]:
        return dict(self.stats, alerters=self.get_alerter_names())


def create_alerter(config: Dict[str, Any]) -> BaseAlerter:
    """
    根据配置创建告警器

    Raises:
        AlertConfigError: 类型不支持或配置无效
    """
    alerter_type = config.get('type')
    name = config.get('name', alerter_type)
    alerter_class = ALERTER_TYPES.get(alerter_type)
    if alerter_class is None:
        raise AlertConfigError(
            f"不支持的告警类型: '{alerter_type}'，支持的类型: {list(ALERTER_TYPES)}",
            alert_name=name)

    alerter = alerter_class(name, config)
    if not alerter.validate_config():
        raise AlertConfigError(f"告警器配置无效: {name}", alert_name=name)
    return alerter

"""HTTP Webhook 告警器实现"""

import asyncio
import json
from typing import Dict, Any, List
from urllib.parse import urlparse

import aiohttp

from .base import BaseAlerter
from ..models.health_check import AlertMessage
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger

SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'PATCH')

# GET 请求只带这些字段，避免诊断上下文撑爆 URL
QUERY_FIELDS = ('target_name', 'host', 'status', 'reason', 'attempt_count',
                'diagnostic', 'timestamp')


def alert_payload(message: AlertMessage) -> Dict[str, Any]:
    """告警消息的 JSON 表示，字段取值保持原始类型"""
    return {
        'target_name': message.target_name,
        'probe_type': message.probe_type,
        'address': message.address,
        'host': message.host,
        'status': message.status,
        'reason': message.reason,
        'attempt_count': message.attempt_count,
        'window': message.window,
        'diagnostic': message.diagnostic,
        'context': message.context,
        'timestamp': message.timestamp.isoformat(),
        'metadata': message.metadata,
    }


class HTTPAlerter(BaseAlerter):
    """向 Webhook 发送告警，失败时按指数退避重试

    未配置 template 时发送 alert_payload() 的 JSON；配置了 template 时按
    {{变量}} 渲染，渲染结果是合法 JSON 则以 JSON 发送，否则作为纯文本。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self.logger = get_logger(f'alerter.http.{self.name}')

        self.url = config.get('url', '')
        self.method = str(config.get('method', 'POST')).upper()
        self.headers = config.get('headers') or {}
        self.template = config.get('template', '')
        self.ssl_verify = config.get('ssl_verify', True)

        self.max_retries = config.get('max_retries', 3)
        self.retry_delay = config.get('retry_delay', 1.0)
        self.retry_backoff = config.get('retry_backoff', 2.0)

        problems = self._config_problems()
        if problems:
            for problem in problems:
                self.logger.error(f"HTTP告警器 {self.name}: {problem}")
            raise AlertConfigError(f"HTTP告警器配置无效: {name} ({'; '.join(problems)})",
                                   alert_name=name)

    def _config_problems(self) -> List[str]:
        problems = []
        parsed = urlparse(self.url) if self.url else None
        if parsed is None:
            problems.append("缺少URL配置")
        elif parsed.scheme not in ('http', 'https') or not parsed.netloc:
            problems.append(f"URL格式无效: {self.url}")

        if self.method not in SUPPORTED_METHODS:
            problems.append(f"不支持的HTTP方法 {self.method}，可选 {list(SUPPORTED_METHODS)}")
        if self.max_retries < 0 or self.retry_delay < 0:
            problems.append("重试次数与重试延迟不能为负数")
        if self.template and not self.template.strip():
            problems.append("模板不能为空白")
        return problems

    def validate_config(self) -> bool:
        return not self._config_problems()

    def _retry_delays(self):
        """每次重试前的等待时间（秒）"""
        for attempt in range(self.max_retries):
            yield self.retry_delay * (self.retry_backoff ** attempt)

    async def send_alert(self, message: AlertMessage) -> bool:
        """
        发送告警

        Args:
            message: 告警消息

        Returns:
            bool: 收到 2xx 响应时为 True

        Raises:
            AlertSendError: 重试 max_retries 次后仍然失败
        """
        self.logger.info(f"发送 {message.status} 告警: {message.target_name} -> {self.url}")
        delays = self._retry_delays()
        attempt = 0

        while True:
            attempt += 1
            try:
                if await self._send_request(message):
                    if attempt > 1:
                        self.logger.info(f"HTTP告警器 {self.name} 第 {attempt} 次尝试发送成功")
                    return True
                failure = "Webhook 返回非 2xx 响应"
            except AlertSendError as e:
                failure = e.message

            delay = next(delays, None)
            if delay is None:
                break
            self.logger.warning(
                f"HTTP告警器 {self.name} 第 {attempt} 次发送失败: {failure}，{delay:.2f} 秒后重试")
            await asyncio.sleep(delay)

        self.logger.error(f"HTTP告警器 {self.name} 共尝试 {attempt} 次均失败: {failure}")
        raise AlertSendError(f"HTTP告警发送失败: {failure}", alert_name=self.name)

    async def _send_request(self, message: AlertMessage) -> bool:
        """
        发送一次请求

        Returns:
            bool: 是否收到 2xx 响应

        Raises:
            AlertSendError: 网络错误或超时
        """
        body = self._prepare_request_data(message)
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        connector = None if self.ssl_verify else aiohttp.TCPConnector(ssl=False)

        try:
            async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
                async with session.request(method=self.method, url=self.url,
                                           headers=self.headers, **body) as response:
                    text = (await response.text())[:200]
                    if 200 <= response.status < 300:
                        self.logger.debug(f"Webhook 响应 {response.status}: {text}")
                        return True
                    self.logger.warning(
                        f"HTTP告警器 {self.name} 收到响应 {response.status}: {text}")
                    return False
        except aiohttp.ClientError as e:
            raise AlertSendError(f"HTTP请求失败: {e}", alert_name=self.name)
        except asyncio.TimeoutError:
            raise AlertSendError(f"HTTP请求超时 ({self.get_timeout()}s)", alert_name=self.name)

    def _prepare_request_data(self, message: AlertMessage) -> Dict[str, Any]:
        """
        构造 aiohttp 请求参数: params（GET）、json 或 data 三选一
        """
        if self.method == 'GET':
            payload = alert_payload(message)
            return {'params': {key: str(payload[key]) for key in QUERY_FIELDS
                               if payload[key] not in (None, '')}}

        if not self.template:
            return {'json': alert_payload(message)}

        rendered = self._render_template(self.template, message)
        try:
            return {'json': json.loads(rendered)}
        except json.JSONDecodeError:
            return {'data': rendered}

    def _render_template(self, template_str: str, message: AlertMessage) -> str:
        """
        替换 {{变量}}；模板以 { } 包围时按 JSON 字符串转义取值

        Raises:
            AlertSendError: JSON 模板渲染后不是合法 JSON
        """
        stripped = template_str.strip()
        as_json = stripped.startswith('{') and stripped.endswith('}')

        rendered = template_str
        for key, value in self.template_vars(message).items():
            if as_json:
                value = json.dumps(value, ensure_ascii=False)[1:-1]
            rendered = rendered.replace('{{' + key + '}}', value)

        if as_json:
            try:
                json.loads(rendered)
            except json.JSONDecodeError as e:
                self.logger.error(f"HTTP告警器 {self.name} 模板渲染结果不是合法 JSON: {e}")
                raise AlertSendError(f"模板渲染结果不是合法 JSON: {e}", alert_name=self.name)
        return rendered

    def get_config_summary(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': 'http',
            'url': self.url,
            'method': self.method,
            'timeout': self.get_timeout(),
            'max_retries': self.max_retries,
            'has_template': bool(self.template),
            'headers_count': len(self.headers),
        }

"""邮件告警器实现"""

import asyncio
import re
from email.message import EmailMessage
from email.utils import formataddr, formatdate
from typing import Dict, Any, List

import aiosmtplib

from .base import BaseAlerter
from ..models.health_check import AlertMessage
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

DEFAULT_SUBJECT = '[ALERT] {{target_name}} watchdog on {{host}}'

DEFAULT_BODY = """[{{timestamp}}] {{status}}: {{reason}}

目标名称: {{target_name}}
目标地址: {{address}} ({{probe_type}})
所在主机: {{host}}
窗口内修复次数: {{attempt_count}} / {{window}}s
探测诊断: {{diagnostic}}

{{context}}

---
此邮件由运维健康巡检系统自动发送，请勿回复。
"""


def _address_list(value) -> List[str]:
    if isinstance(value, str):
        return [value]
    return list(value or [])


class EmailAlerter(BaseAlerter):
    """通过 SMTP 发送告警邮件

    username 为空时不做认证，适用于本机 MTA（localhost:25）。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self.logger = get_logger(f'alerter.email.{self.name}')

        self.smtp_server = config.get('smtp_server', '')
        self.smtp_port = config.get('smtp_port', 587)
        self.username = config.get('username', '')
        self.password = config.get('password', '')
        self.use_tls = config.get('use_tls', False)
        self.start_tls = config.get('start_tls', True)

        self.from_email = config.get('from_email', self.username)
        self.from_name = config.get('from_name', 'ops-health watchdog')
        self.to_emails = _address_list(config.get('to_emails'))
        self.cc_emails = _address_list(config.get('cc_emails'))
        self.subject_template = config.get('subject_template', DEFAULT_SUBJECT)
        self.body_template = config.get('body_template', DEFAULT_BODY)

        self.max_retries = config.get('max_retries', 2)
        self.retry_delay = config.get('retry_delay', 2.0)

        problems = self._config_problems()
        if problems:
            for problem in problems:
                self.logger.error(f"邮件告警器 {self.name}: {problem}")
            raise AlertConfigError(f"邮件告警器配置无效: {name} ({'; '.join(problems)})",
                                   alert_name=name)

    def _config_problems(self) -> List[str]:
        problems = []
        if not self.smtp_server:
            problems.append("缺少 smtp_server")
        if isinstance(self.smtp_port, bool) or not isinstance(self.smtp_port, int) \
                or not 0 < self.smtp_port < 65536:
            problems.append(f"SMTP端口无效: {self.smtp_port}")
        if self.username and not self.password:
            problems.append("配置了 username 但缺少 password")
        if self.use_tls and self.start_tls:
            problems.append("use_tls 与 start_tls 不能同时启用")

        if not self.from_email:
            problems.append("缺少发件人 from_email")
        if not self.to_emails:
            problems.append("缺少收件人 to_emails")
        invalid = [addr for addr in [self.from_email] + self.to_emails + self.cc_emails
                   if addr and not EMAIL_PATTERN.match(addr)]
        if invalid:
            problems.append(f"邮箱格式无效: {', '.join(invalid)}")
        return problems

    def validate_config(self) -> bool:
        return not self._config_problems()

    async def send_alert(self, message: AlertMessage) -> bool:
        """
        发送告警邮件，失败后按 retry_delay * 2^n 重试

        Args:
            message: 告警消息

        Returns:
            bool: 发送成功时为 True

        Raises:
            AlertSendError: 重试 max_retries 次后仍然失败
        """
        email_msg = self._create_email_message(message)
        recipients = ', '.join(self.to_emails + self.cc_emails)
        self.logger.info(f"发送 {message.status} 告警邮件: {message.target_name} -> {recipients}")

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await aiosmtplib.send(
                    email_msg,
                    hostname=self.smtp_server,
                    port=self.smtp_port,
                    username=self.username or None,
                    password=self.password or None,
                    use_tls=self.use_tls,
                    start_tls=self.start_tls,
                    timeout=self.get_timeout(),
                )
                return True
            except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
                if attempt == attempts:
                    self.logger.error(f"邮件告警器 {self.name} 共尝试 {attempt} 次均失败: {e}")
                    raise AlertSendError(f"邮件告警发送失败: {e}", alert_name=self.name)
                delay = self.retry_delay * (2 ** (attempt - 1))
                self.logger.warning(
                    f"邮件告警器 {self.name} 第 {attempt} 次发送失败: {e}，{delay:.2f} 秒后重试")
                await asyncio.sleep(delay)
        return False

    def _create_email_message(self, message: AlertMessage) -> EmailMessage:
        """按模板生成纯文本邮件"""
        email_msg = EmailMessage()
        email_msg['Subject'] = self._render_template(self.subject_template, message).strip()
        email_msg['From'] = formataddr((self.from_name, self.from_email))
        email_msg['To'] = ', '.join(self.to_emails)
        if self.cc_emails:
            email_msg['Cc'] = ', '.join(self.cc_emails)
        email_msg['Date'] = formatdate(localtime=True)
        email_msg.set_content(self._render_template(self.body_template, message))
        return email_msg

    def _render_template(self, template_str: str, message: AlertMessage) -> str:
        rendered = template_str
        for key, value in self.template_vars(message).items():
            rendered = rendered.replace('{{' + key + '}}', value)
        return rendered

    def get_config_summary(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': 'email',
            'smtp_server': self.smtp_server,
            'smtp_port': self.smtp_port,
            'from_email': self.from_email,
            'to_emails_count': len(self.to_emails),
            'cc_emails_count': len(self.cc_emails),
            'use_tls': self.use_tls,
            'start_tls': self.start_tls,
            'timeout': self.get_timeout(),
            'max_retries': self.max_retries,
        }

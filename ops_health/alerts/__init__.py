"""告警模块"""

from .base import BaseAlerter
from .http_alerter import HTTPAlerter
from .email_alerter import EmailAlerter
from .log_alerter import LogAlerter, format_alert_text
from .manager import AlertManager, create_alerter, local_hostname

__all__ = [
    'BaseAlerter',
    'AlertManager',
    'HTTPAlerter',
    'EmailAlerter',
    'LogAlerter',
    'create_alerter',
    'format_alert_text',
    'local_hostname'
]

"""修复动作模块"""

from .base import BaseAction
from .factory import ActionFactory, action_factory, register_action
from .command_action import CommandAction
from .systemd_action import SystemdRestartAction

__all__ = ['BaseAction', 'ActionFactory', 'action_factory', 'register_action',
           'CommandAction', 'SystemdRestartAction']

"""systemd 单元重启修复动作"""

import asyncio
from typing import List

from .base import BaseAction
from .command_action import execute
from .factory import register_action
from ..models.health_check import Target, RemediationAck
from ..probes.unit_probe import normalize_unit
from ..utils.command import run_command

DEFAULT_JOURNAL_LINES = 50


@register_action('systemd_restart')
class SystemdRestartAction(BaseAction):
    """执行 systemctl restart，并可收集 status 与 journal 作为告警上下文"""

    def _unit(self, target: Target) -> str:
        return normalize_unit(self.config.get('unit') or target.address)

    def validate_config(self, target: Target) -> bool:
        unit = self.config.get('unit') or target.address
        if not unit or any(c.isspace() for c in str(unit).strip()):
            self.logger.error(f"目标 {target.name} 的 systemd 单元名称无效: {unit!r}")
            return False
        journal_lines = self.config.get('journal_lines', DEFAULT_JOURNAL_LINES)
        if not isinstance(journal_lines, int) or journal_lines < 0:
            self.logger.error(f"目标 {target.name} journal_lines 必须是非负整数")
            return False
        return True

    async def remediate(self, target: Target) -> RemediationAck:
        unit = self._unit(target)
        systemctl = self.config.get('systemctl', 'systemctl')
        self.logger.info(f"目标 {target.name} 重启单元: {unit}")

        await execute([systemctl, 'restart', unit], self.get_timeout(), target,
                      self.action_type)
        return RemediationAck(
            target_name=target.name,
            action_type=self.action_type,
            detail=f"systemctl restart {unit}"
        )

    async def collect_context(self, target: Target) -> str:
        """收集 systemctl status 输出与最近的 journal 日志"""
        unit = self._unit(target)
        systemctl = self.config.get('systemctl', 'systemctl')
        journal_lines = self.config.get('journal_lines', DEFAULT_JOURNAL_LINES)

        sections: List[str] = []
        commands = [
            ('systemctl status', [systemctl, '--no-pager', '-l', 'status', unit]),
        ]
        if journal_lines:
            commands.append(('recent journal', ['journalctl', '-u', unit, '--no-pager',
                                                '-n', str(journal_lines)]))

        for title, argv in commands:
            try:
                result = await run_command(argv, self.get_timeout())
                output = (result.stdout + result.stderr).strip()
            except (OSError, asyncio.TimeoutError) as e:
                output = f"无法执行 {argv[0]}: {e}"
            sections.append(f"==== {title} ====\n{output}")

        return '\n\n'.join(sections)

"""修复动作测试"""

import asyncio
import sys
from unittest.mock import AsyncMock, patch

import pytest

from ops_health.actions.command_action import CommandAction, raise_for_result
from ops_health.actions.factory import ActionFactory, action_factory
from ops_health.actions.systemd_action import SystemdRestartAction
from ops_health.models.health_check import Target
from ops_health.utils.command import CommandResult, run_command
from ops_health.utils.exceptions import ActionError, ErrorCode


def make_target(action, address='nginx'):
    return Target(name='web', probe_type='unit', address=address, action=action)


class TestRunCommand:
    """外部命令执行测试"""

    @pytest.mark.asyncio
    async def test_collects_output(self):
        result = await run_command([sys.executable, '-c', 'print("hello")'], timeout=10)

        assert result.ok
        assert result.stdout.strip() == 'hello'

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_command([sys.executable, '-c', 'import time; time.sleep(30)'],
                              timeout=0.2)

    @pytest.mark.asyncio
    async def test_missing_command(self):
        with pytest.raises(FileNotFoundError):
            await run_command(['/nonexistent/ops-health-command'])

    def test_tail(self):
        result = CommandResult(['x'], 1, 'a\nb\nc\n', 'd\n')
        assert result.tail(2) == 'c\nd'


class TestActionFactory:
    """修复动作工厂测试"""

    def test_builtin_types(self):
        assert action_factory.is_type_supported('systemd_restart')
        assert action_factory.is_type_supported('command')

    def test_create_action(self):
        action = action_factory.create_action(make_target({'type': 'systemd_restart'}))
        assert isinstance(action, SystemdRestartAction)

    def test_unsupported_type(self):
        with pytest.raises(ActionError) as exc_info:
            action_factory.create_action(make_target({'type': 'reboot'}))
        assert exc_info.value.error_code is ErrorCode.ACTION_CONFIG_ERROR

    def test_missing_type(self):
        with pytest.raises(ActionError):
            action_factory.create_action(make_target({'argv': ['true']}))

    def test_invalid_config(self):
        with pytest.raises(ActionError, match="配置验证失败"):
            action_factory.create_action(make_target({'type': 'command', 'argv': []}))

    def test_register_rejects_non_action(self):
        with pytest.raises(ActionError):
            ActionFactory().register_action('bad', object)


class TestRaiseForResult:
    """退出码映射测试"""

    @pytest.mark.parametrize('returncode,error_code', [
        (1, ErrorCode.COMMAND_FAILED),
        (126, ErrorCode.PERMISSION_DENIED),
        (127, ErrorCode.TARGET_NOT_FOUND),
    ])
    def test_mapping(self, returncode, error_code):
        result = CommandResult(['restart-app'], returncode, '', 'boom')
        with pytest.raises(ActionError) as exc_info:
            raise_for_result(result, make_target({'type': 'command'}), 'command')
        assert exc_info.value.error_code is error_code

    def test_success(self):
        result = CommandResult(['true'], 0, '', '')
        raise_for_result(result, make_target({'type': 'command'}), 'command')


class TestCommandAction:
    """command 修复动作测试"""

    @pytest.mark.asyncio
    async def test_remediate(self):
        action = CommandAction({'type': 'command', 'argv': ['docker', 'restart', 'web']})
        done = CommandResult(['docker', 'restart', 'web'], 0, 'web\n', '')

        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(return_value=done)) as run:
            ack = await action.remediate(make_target(action.config))

        run.assert_awaited_once_with(['docker', 'restart', 'web'], 30)
        assert ack.action_type == 'command'
        assert ack.detail == 'web'

    @pytest.mark.asyncio
    async def test_remediate_failure(self):
        action = CommandAction({'type': 'command', 'argv': ['false']})
        failed = CommandResult(['false'], 1, '', '')

        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(return_value=failed)):
            with pytest.raises(ActionError) as exc_info:
                await action.remediate(make_target(action.config))
        assert exc_info.value.error_code is ErrorCode.COMMAND_FAILED

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        action = CommandAction({'type': 'command', 'argv': ['nope']})
        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(side_effect=FileNotFoundError())):
            with pytest.raises(ActionError) as exc_info:
                await action.remediate(make_target(action.config))
        assert exc_info.value.error_code is ErrorCode.TARGET_NOT_FOUND

    @pytest.mark.asyncio
    async def test_timeout(self):
        action = CommandAction({'type': 'command', 'argv': ['slow'], 'timeout': 1})
        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(side_effect=asyncio.TimeoutError())):
            with pytest.raises(ActionError) as exc_info:
                await action.remediate(make_target(action.config))
        assert exc_info.value.error_code is ErrorCode.COMMAND_TIMEOUT

    @pytest.mark.asyncio
    async def test_exec_format_error(self, tmp_path):
        """测试无法执行的文件（非可执行格式）转换为 ActionError"""
        binary = tmp_path / 'broken-restart'
        binary.write_bytes(b'\x00\x01\x02 not an executable\n')
        binary.chmod(0o755)

        action = CommandAction({'type': 'command', 'argv': [str(binary)]})
        with pytest.raises(ActionError) as exc_info:
            await action.remediate(make_target(action.config))
        assert exc_info.value.error_code is ErrorCode.COMMAND_FAILED


class TestSystemdRestartAction:
    """systemd_restart 修复动作测试"""

    def test_validate_config(self):
        action = SystemdRestartAction({'type': 'systemd_restart'})
        assert action.validate_config(make_target(action.config))
        assert not action.validate_config(make_target(action.config, address='bad unit'))

        action = SystemdRestartAction({'type': 'systemd_restart', 'journal_lines': -1})
        assert not action.validate_config(make_target(action.config))

    @pytest.mark.asyncio
    async def test_restart_uses_unit_option(self):
        action = SystemdRestartAction({'type': 'systemd_restart', 'unit': 'nginx'})
        done = CommandResult([], 0, '', '')

        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(return_value=done)) as run:
            ack = await action.remediate(make_target(action.config, address='127.0.0.1:80'))

        assert run.call_args[0][0] == ['systemctl', 'restart', 'nginx.service']
        assert ack.detail == 'systemctl restart nginx.service'

    @pytest.mark.asyncio
    async def test_permission_denied(self):
        action = SystemdRestartAction({'type': 'systemd_restart'})
        denied = CommandResult([], 126, '', 'Access denied')

        with patch('ops_health.actions.command_action.run_command',
                   AsyncMock(return_value=denied)):
            with pytest.raises(ActionError) as exc_info:
                await action.remediate(make_target(action.config))
        assert exc_info.value.error_code is ErrorCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_collect_context(self):
        """测试收集 status 与 journal 输出"""
        action = SystemdRestartAction({'type': 'systemd_restart', 'journal_lines': 20})
        outputs = [
            CommandResult([], 3, 'nginx.service - web\n   Active: failed', ''),
            CommandResult([], 0, 'line1\nline2', ''),
        ]

        with patch('ops_health.actions.systemd_action.run_command',
                   AsyncMock(side_effect=outputs)) as run:
            context = await action.collect_context(make_target(action.config))

        assert '==== systemctl status ====' in context
        assert 'Active: failed' in context
        assert '==== recent journal ====' in context
        assert run.call_args_list[1][0][0] == ['journalctl', '-u', 'nginx.service',
                                               '--no-pager', '-n', '20']

    @pytest.mark.asyncio
    async def test_collect_context_tolerates_missing_tools(self):
        action = SystemdRestartAction({'type': 'systemd_restart', 'journal_lines': 0})
        with patch('ops_health.actions.systemd_action.run_command',
                   AsyncMock(side_effect=FileNotFoundError('systemctl'))):
            context = await action.collect_context(make_target(action.config))

        assert '无法执行 systemctl' in context
        assert 'journal' not in context

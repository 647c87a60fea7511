"""执行任意命令的修复动作"""

import asyncio
from typing import List

from .base import BaseAction
from .factory import register_action
from ..models.health_check import Target, RemediationAck
from ..utils.command import run_command, CommandResult
from ..utils.exceptions import ActionError, ErrorCode


def raise_for_result(result: CommandResult, target: Target, action_type: str):
    """
    按退出码把命令失败映射为 ActionError

    126 视为权限不足，127 视为命令或目标不存在，其余非零退出码视为命令失败
    """
    if result.ok:
        return

    if result.returncode == 126:
        error_code = ErrorCode.PERMISSION_DENIED
    elif result.returncode == 127:
        error_code = ErrorCode.TARGET_NOT_FOUND
    else:
        error_code = ErrorCode.COMMAND_FAILED

    raise ActionError(
        f"命令 {' '.join(result.argv)} 退出码 {result.returncode}: {result.tail(3)}",
        error_code, target_name=target.name, action_type=action_type,
        details={'returncode': result.returncode}
    )


async def execute(argv: List[str], timeout: float, target: Target,
                  action_type: str) -> CommandResult:
    """执行命令，把启动失败和超时转换为 ActionError"""
    try:
        result = await run_command(argv, timeout)
    except FileNotFoundError as e:
        raise ActionError(f"命令不存在: {argv[0]}", ErrorCode.TARGET_NOT_FOUND,
                          target_name=target.name, action_type=action_type, cause=e)
    except PermissionError as e:
        raise ActionError(f"无权限执行: {argv[0]}", ErrorCode.PERMISSION_DENIED,
                          target_name=target.name, action_type=action_type, cause=e)
    except asyncio.TimeoutError as e:
        raise ActionError(f"命令执行超时 ({timeout}s): {' '.join(argv)}",
                          ErrorCode.COMMAND_TIMEOUT, target_name=target.name,
                          action_type=action_type, cause=e)
    except OSError as e:
        raise ActionError(f"命令启动失败: {argv[0]}: {e}", ErrorCode.COMMAND_FAILED,
                          target_name=target.name, action_type=action_type, cause=e)

    raise_for_result(result, target, action_type)
    return result


@register_action('command')
class CommandAction(BaseAction):
    """执行配置中的 argv 列表作为修复动作"""

    def validate_config(self, target: Target) -> bool:
        argv = self.config.get('argv')
        if not isinstance(argv, list) or not argv:
            self.logger.error(f"目标 {target.name} 的 command 动作缺少 argv 列表")
            return False
        if not all(isinstance(arg, (str, int, float)) for arg in argv):
            self.logger.error(f"目标 {target.name} 的 argv 只能包含字符串或数字")
            return False
        return True

    async def remediate(self, target: Target) -> RemediationAck:
        argv = [str(arg) for arg in self.config['argv']]
        self.logger.info(f"目标 {target.name} 执行修复命令: {' '.join(argv)}")

        result = await execute(argv, self.get_timeout(), target, self.action_type)
        return RemediationAck(
            target_name=target.name,
            action_type=self.action_type,
            detail=result.tail(3)
        )

"""外部命令执行工具"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .log_manager import get_logger

logger = get_logger('command')


@dataclass
class CommandResult:
    """外部命令执行结果"""
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = 5) -> str:
        """返回合并输出的最后几行，用于诊断信息"""
        output = (self.stdout + self.stderr).strip().splitlines()
        return '\n'.join(output[-lines:])


async def run_command(argv: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
    """
    异步执行外部命令并收集输出

    Args:
        argv: 命令及参数
        timeout: 超时时间（秒），超时后终止子进程

    Returns:
        CommandResult: 执行结果

    Raises:
        FileNotFoundError: 命令不存在
        PermissionError: 无权限执行
        asyncio.TimeoutError: 执行超时
    """
    argv = [str(arg) for arg in argv]
    logger.debug(f"执行命令: {' '.join(argv)}")

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return CommandResult(
        argv=argv,
        returncode=process.returncode,
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace')
    )

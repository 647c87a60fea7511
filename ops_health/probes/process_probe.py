"""进程存活探测器"""

import asyncio
import time
from typing import List

import psutil

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult


def find_processes(name: str) -> List[int]:
    """按进程名（或命令行首个参数的文件名）查找进程，返回 PID 列表"""
    pids = []
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        try:
            info = proc.info
            cmdline = info.get('cmdline') or []
            exe_name = cmdline[0].rsplit('/', 1)[-1] if cmdline else ''
            if info.get('name') == name or exe_name == name:
                pids.append(info['pid'])
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return pids


@register_probe('process')
class ProcessProbe(BaseProbe):
    """至少存在 min_count 个同名进程时视为健康"""

    def validate_target(self, target: Target) -> bool:
        if not target.address or not target.address.strip():
            self.logger.error(f"目标 {target.name} 缺少进程名称")
            return False
        min_count = target.options.get('min_count', 1)
        if not isinstance(min_count, int) or min_count < 1:
            self.logger.error(f"目标 {target.name} min_count 必须是正整数")
            return False
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        name = target.address.strip()
        min_count = target.options.get('min_count', 1)
        start = time.monotonic()

        loop = asyncio.get_running_loop()
        pids = await loop.run_in_executor(None, find_processes, name)

        if len(pids) >= min_count:
            return self.healthy(target, start, f"进程 {name} 运行中 ({len(pids)} 个)",
                                pids=pids)
        return self.unhealthy(target, start,
                              f"进程 {name} 数量不足: {len(pids)} < {min_count}",
                              pids=pids)

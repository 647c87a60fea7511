"""systemd 单元活跃状态探测器"""

import asyncio
import time

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult
from ..utils.command import run_command


def normalize_unit(name: str) -> str:
    """未带单元后缀的名称补全为 .service"""
    name = name.strip()
    if '.' not in name.rsplit('@', 1)[-1]:
        return f'{name}.service'
    return name


@register_probe('unit')
class UnitProbe(BaseProbe):
    """执行 systemctl is-active 判断单元是否处于 active 状态"""

    def validate_target(self, target: Target) -> bool:
        if not target.address or not target.address.strip():
            self.logger.error(f"目标 {target.name} 缺少单元名称")
            return False
        if any(c.isspace() for c in target.address.strip()):
            self.logger.error(f"目标 {target.name} 单元名称包含空白字符: {target.address}")
            return False
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        unit = normalize_unit(target.address)
        systemctl = target.options.get('systemctl', 'systemctl')
        start = time.monotonic()

        try:
            result = await run_command([systemctl, 'is-active', unit], timeout)
        except FileNotFoundError:
            return self.unhealthy(target, start, f"命令不存在: {systemctl}", unit=unit)
        except PermissionError as e:
            return self.unhealthy(target, start, f"无权限执行 {systemctl}: {e}", unit=unit)
        except asyncio.TimeoutError:
            return self.unhealthy(target, start, f"systemctl is-active 超时 ({timeout}s)",
                                  unit=unit)

        # is-active 输出的第一行即为单元状态
        lines = result.stdout.strip().splitlines()
        state = lines[0].strip() if lines else 'unknown'

        if result.ok and state == 'active':
            return self.healthy(target, start, f"单元 {unit} 状态: {state}",
                                unit=unit, unit_state=state)
        return self.unhealthy(target, start, f"单元 {unit} 状态: {state}",
                              unit=unit, unit_state=state, returncode=result.returncode)

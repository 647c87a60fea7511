"""文件系统使用率探测器"""

import asyncio
import time

import psutil

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult

DEFAULT_MAX_PERCENT = 90.0


@register_probe('disk')
class DiskProbe(BaseProbe):
    """路径所在文件系统的使用率超过 max_percent 时视为不健康"""

    def validate_target(self, target: Target) -> bool:
        if not target.address:
            self.logger.error(f"目标 {target.name} 缺少路径")
            return False
        max_percent = target.options.get('max_percent', DEFAULT_MAX_PERCENT)
        if not isinstance(max_percent, (int, float)) or not 0 < max_percent <= 100:
            self.logger.error(f"目标 {target.name} max_percent 必须在 (0, 100] 之间")
            return False
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        path = target.address
        max_percent = float(target.options.get('max_percent', DEFAULT_MAX_PERCENT))
        start = time.monotonic()

        loop = asyncio.get_running_loop()
        try:
            usage = await loop.run_in_executor(None, psutil.disk_usage, path)
        except OSError as e:
            return self.unhealthy(target, start, f"无法读取 {path} 的使用情况: {e}")

        metadata = {
            'percent': usage.percent,
            'used_bytes': usage.used,
            'free_bytes': usage.free,
            'total_bytes': usage.total,
        }
        free_gb = usage.free / 1024 ** 3
        diagnostic = f"{path} 使用率 {usage.percent:.1f}% (剩余 {free_gb:.2f} GB)"

        if usage.percent > max_percent:
            return self.unhealthy(target, start,
                                  f"{diagnostic} 超过阈值 {max_percent:.1f}%", **metadata)
        return self.healthy(target, start, diagnostic, **metadata)

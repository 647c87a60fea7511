"""TCP 端口连通性探测器"""

import asyncio
import time
from typing import Tuple

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult


def parse_host_port(target: Target) -> Tuple[str, int]:
    """
    从目标中解析主机和端口，支持 host:port、[ipv6]:port 和 options.port

    Raises:
        ValueError: 地址格式无效
    """
    address = target.address.strip()
    port = target.options.get('port')

    if port is None:
        host, sep, port_str = address.rpartition(':')
        if not sep or not host:
            raise ValueError(f"地址缺少端口: {address}")
        port = port_str
    else:
        host = address

    host = host.strip('[]')
    port = int(port)
    if not host:
        raise ValueError("主机名为空")
    if not 0 < port < 65536:
        raise ValueError(f"端口超出范围: {port}")
    return host, port


@register_probe('tcp')
class TcpProbe(BaseProbe):
    """通过建立 TCP 连接判断端口是否可用"""

    def validate_target(self, target: Target) -> bool:
        try:
            parse_host_port(target)
        except (TypeError, ValueError) as e:
            self.logger.error(f"目标 {target.name} 的 TCP 地址无效: {e}")
            return False
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        host, port = parse_host_port(target)
        start = time.monotonic()

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except asyncio.TimeoutError:
            return self.unhealthy(target, start, f"连接 {host}:{port} 超时 ({timeout}s)",
                                  host=host, port=port)
        except OSError as e:
            # 连接被拒绝、DNS 解析失败、网络不可达
            return self.unhealthy(target, start, f"连接 {host}:{port} 失败: {e}",
                                  host=host, port=port)

        latency = time.monotonic() - start
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

        result = self.healthy(target, start, f"连接 {host}:{port} 成功",
                              host=host, port=port)
        self.logger.debug(f"TCP 连接 {host}:{port} 耗时 {latency:.3f}s")
        return result

"""HTTP 状态码与延迟 SLA 探测器"""

import asyncio
import time
from typing import Dict, Any, List, Optional

import aiohttp

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult

VALID_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'DELETE', 'OPTIONS', 'PATCH']


@register_probe('http')
class HttpProbe(BaseProbe):
    """HTTP 探测器

    默认 2xx/3xx 视为健康；配置 max_latency_ms 时，响应耗时超过阈值同样视为不健康。
    """

    def validate_target(self, target: Target) -> bool:
        """
        验证HTTP目标配置

        Returns:
            bool: 配置是否有效
        """
        url = target.address
        if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
            self.logger.error(f"目标 {target.name} URL格式无效: {url}")
            return False

        method = str(target.options.get('method', 'GET')).upper()
        if method not in VALID_METHODS:
            self.logger.error(f"目标 {target.name} 不支持的HTTP方法: {method}")
            return False

        expected_status = target.options.get('expected_status')
        if expected_status is not None:
            statuses = expected_status if isinstance(expected_status, list) else [expected_status]
            for status in statuses:
                if not isinstance(status, int) or status < 100 or status > 599:
                    self.logger.error(f"目标 {target.name} 期望状态码无效: {status}")
                    return False

        max_latency_ms = target.options.get('max_latency_ms')
        if max_latency_ms is not None:
            if not isinstance(max_latency_ms, (int, float)) or max_latency_ms <= 0:
                self.logger.error(f"目标 {target.name} max_latency_ms 必须为正数")
                return False

        return True

    def _is_status_expected(self, target: Target, status_code: int) -> bool:
        """
        检查状态码是否符合期望，未配置时接受 2xx 和 3xx

        Args:
            status_code: HTTP状态码
        """
        expected_status = target.options.get('expected_status')
        if expected_status is None:
            return 200 <= status_code < 400
        if isinstance(expected_status, list):
            return status_code in expected_status
        return status_code == expected_status

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        options = target.options
        method = str(options.get('method', 'GET')).upper()
        headers: Dict[str, Any] = options.get('headers', {})
        max_latency_ms: Optional[float] = options.get('max_latency_ms')

        client_timeout = aiohttp.ClientTimeout(total=timeout)
        connector = None
        if options.get('ssl_verify', True) is False:
            connector = aiohttp.TCPConnector(ssl=False)

        start = time.monotonic()
        metadata: Dict[str, Any] = {'url': target.address, 'method': method}

        try:
            async with aiohttp.ClientSession(timeout=client_timeout,
                                             connector=connector) as session:
                # 不跟随重定向，3xx 本身就是有效响应
                async with session.request(method, target.address, headers=headers,
                                           allow_redirects=False) as response:
                    latency_ms = int(round((time.monotonic() - start) * 1000))
                    status = response.status
                    metadata['status_code'] = status
                    metadata['latency_ms'] = latency_ms
        except asyncio.TimeoutError:
            return self.unhealthy(target, start, f"code=000 HTTP请求超时 ({timeout}s)",
                                  **metadata)
        except aiohttp.ClientError as e:
            return self.unhealthy(target, start, f"code=000 HTTP客户端错误: {e}", **metadata)

        problems: List[str] = []
        if not self._is_status_expected(target, status):
            problems.append(f"HTTP状态码不符合期望: {status}")
        if max_latency_ms is not None and latency_ms > max_latency_ms:
            problems.append(f"响应耗时 {latency_ms}ms 超过阈值 {max_latency_ms}ms")

        diagnostic = f"code={status} latency_ms={latency_ms}"
        if problems:
            return self.unhealthy(target, start, f"{diagnostic} {'; '.join(problems)}",
                                  **metadata)
        return self.healthy(target, start, diagnostic, **metadata)

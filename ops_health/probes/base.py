"""探测器基类"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..models.health_check import Target, ProbeResult, Verdict
from ..utils.log_manager import get_logger

# 探测允许超出超时时间的余量（秒）
PROBE_SLACK = 0.5


class BaseProbe(ABC):
    """探测器抽象基类

    check() 永不抛出异常（取消除外）：连接拒绝、DNS 失败、超时、
    状态码不符、命令失败等情况都折算为 UNHEALTHY 结果。
    """

    probe_type = 'base'

    def __init__(self):
        self.logger = get_logger(f'probe.{self.probe_type}')

    async def check(self, target: Target, timeout: Optional[float] = None) -> ProbeResult:
        """
        对目标执行一次健康检查

        Args:
            target: 被检查的目标
            timeout: 超时时间（秒），默认取目标策略中的超时

        Returns:
            ProbeResult: 探测结果
        """
        if timeout is None:
            timeout = target.policy.timeout

        start = time.monotonic()
        try:
            result = await asyncio.wait_for(self._probe(target, timeout),
                                            timeout + PROBE_SLACK)
        except asyncio.TimeoutError:
            result = self.unhealthy(target, start, f"探测超时 ({timeout}s)")
        except Exception as e:
            result = self.unhealthy(target, start, f"探测异常: {e}")

        self.logger.debug(
            f"目标 {target.name} 探测完成: {result.verdict.value}, "
            f"诊断: {result.diagnostic}")
        return result

    @abstractmethod
    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        """
        执行具体的探测逻辑

        Args:
            target: 被检查的目标
            timeout: 超时时间（秒）

        Returns:
            ProbeResult: 探测结果
        """
        pass

    @abstractmethod
    def validate_target(self, target: Target) -> bool:
        """
        验证目标配置是否适用于该探测器

        Returns:
            bool: 配置是否有效
        """
        pass

    def healthy(self, target: Target, start: float, diagnostic: Optional[str] = None,
                **metadata) -> ProbeResult:
        return ProbeResult(
            target_name=target.name,
            verdict=Verdict.HEALTHY,
            latency=time.monotonic() - start,
            diagnostic=diagnostic,
            metadata=metadata
        )

    def unhealthy(self, target: Target, start: float, diagnostic: str,
                  **metadata) -> ProbeResult:
        return ProbeResult(
            target_name=target.name,
            verdict=Verdict.UNHEALTHY,
            latency=time.monotonic() - start,
            diagnostic=diagnostic,
            metadata=metadata
        )

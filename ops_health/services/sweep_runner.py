"""批量巡检执行器

一次性并发探测一组目标（端口巡检、HTTP SLA 巡检），并发数受信号量限制，
结果按输入顺序汇总为 SweepReport。
"""

import asyncio
import time
from datetime import datetime
from typing import List, Optional

from ..models.health_check import Target, ProbeResult, Verdict, SweepRecord, SweepReport
from ..probes.base import BaseProbe
from ..probes.factory import ProbeFactory, probe_factory
from ..utils.log_manager import get_logger

CANCELLED_DIAGNOSTIC = 'cancelled: sweep deadline exceeded'


class SweepRunner:
    """批量巡检执行器"""

    def __init__(self, concurrency: int = 8, deadline: Optional[float] = None,
                 factory: ProbeFactory = probe_factory):
        """
        Args:
            concurrency: 同时进行的探测数上限
            deadline: 整次巡检的截止时间（秒），超时未完成的探测被取消
            factory: 探测器工厂
        """
        if concurrency < 1:
            raise ValueError("并发数必须至少为 1")
        if deadline is not None and deadline <= 0:
            raise ValueError("截止时间必须为正数")

        self.concurrency = concurrency
        self.deadline = deadline
        self.factory = factory
        self.logger = get_logger('sweep')

    async def run(self, targets: List[Target]) -> SweepReport:
        """
        执行一次批量巡检

        Args:
            targets: 目标列表

        Returns:
            SweepReport: 与输入顺序一致的巡检报告

        Raises:
            ProbeError: 目标配置无效（在任何探测开始前抛出）
        """
        probes = [self.factory.create_probe(target) for target in targets]
        semaphore = asyncio.Semaphore(self.concurrency)
        started_at = datetime.now()
        start = time.monotonic()

        self.logger.info(
            f"开始批量巡检 {len(targets)} 个目标，并发 {self.concurrency}"
            + (f"，截止 {self.deadline}s" if self.deadline else ''))

        async def check_one(probe: BaseProbe, target: Target) -> ProbeResult:
            async with semaphore:
                return await probe.check(target)

        tasks = [asyncio.create_task(check_one(probe, target), name=f'sweep:{target.name}')
                 for probe, target in zip(probes, targets)]

        if tasks:
            try:
                _, pending = await asyncio.wait(tasks, timeout=self.deadline)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                raise

            for task in pending:
                task.cancel()
            if pending:
                self.logger.warning(f"巡检超过截止时间，取消 {len(pending)} 个未完成的探测")
                await asyncio.gather(*pending, return_exceptions=True)

        records = []
        for target, task in zip(targets, tasks):
            if task.cancelled():
                result = ProbeResult(target.name, Verdict.UNHEALTHY,
                                     latency=time.monotonic() - start,
                                     diagnostic=CANCELLED_DIAGNOSTIC)
            else:
                result = task.result()
            records.append(SweepRecord(target, result))

        report = SweepReport(tuple(records), started_at, datetime.now())
        self.logger.info(
            f"批量巡检完成: 通过 {report.passed}，失败 {report.failed}，"
            f"耗时 {report.duration:.2f}s")
        return report

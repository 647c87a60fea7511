"""单目标健康监控状态机

每个目标一个 HealthMonitor，按固定间隔执行:
探测 → 判断 → 修复（带抖动保护）→ 必要时升级告警。

状态:
    HEALTHY             目标健康
    UNHEALTHY_RETRYING  目标不健康，修复已下发或失败，下一轮继续处理
    ESCALATED           时间窗内修复次数已达上限，停止自动修复并告警，
                        直到人工 reset() 或进程重启
"""

import asyncio
import time
from typing import Callable, Optional, Dict, Any, Awaitable

from .flap_window import FlapWindow
from ..actions.base import BaseAction
from ..alerts.manager import AlertManager
from ..models.health_check import (
    Target, ProbeResult, MonitorState, StateChange, AlertMessage
)
from ..probes.base import BaseProbe
from ..utils.exceptions import ActionError
from ..utils.log_manager import get_logger


class HealthMonitor:
    """单个目标的监控状态机，只在所属任务内访问"""

    def __init__(self, target: Target, probe: BaseProbe, alert_manager: AlertManager,
                 action: Optional[BaseAction] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 on_state_change: Optional[Callable[[StateChange], None]] = None):
        """
        Args:
            target: 被监控的目标
            probe: 探测器
            alert_manager: 告警管理器
            action: 修复动作，为 None 时只探测和告警
            clock: 单调时钟，用于抖动时间窗
            sleep: 修复后冷却等待函数
            on_state_change: 状态变化回调
        """
        self.target = target
        self.policy = target.policy
        self.probe = probe
        self.action = action
        self.alert_manager = alert_manager
        self.flap_window = FlapWindow(self.policy.window)
        self.state = MonitorState.HEALTHY
        self.last_result: Optional[ProbeResult] = None
        self.tick_count = 0
        self.on_state_change = on_state_change
        self._clock = clock
        self._sleep = sleep
        self.logger = get_logger(f'monitor.{target.name}')

    async def run(self, stop_event: asyncio.Event):
        """
        轮询循环，stop_event 置位后在当前轮次结束时退出

        Args:
            stop_event: 停止信号
        """
        self.logger.info(
            f"开始监控目标 {self.target.name} ({self.target.probe_type} {self.target.address}) "
            f"interval={self.policy.interval}s window={self.policy.window}s "
            f"max_restarts={self.policy.max_restarts} cooldown={self.policy.cooldown}s"
        )

        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                self.logger.error(f"目标 {self.target.name} 监控轮次异常: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop_event.wait(), self.policy.interval)
            except asyncio.TimeoutError:
                pass

        self.logger.info(f"目标 {self.target.name} 监控已停止，最终状态: {self.state.value}")

    async def tick(self) -> MonitorState:
        """
        执行一个轮询周期

        Returns:
            MonitorState: 本轮结束后的状态
        """
        self.tick_count += 1

        if self.state is MonitorState.ESCALATED:
            if self.policy.observe_when_escalated:
                result = await self._probe()
                self.logger.info(
                    f"目标 {self.target.name} 已升级，只读探测结果: "
                    f"{result.verdict.value} ({result.diagnostic})")
            return self.state

        result = await self._probe()

        if result.is_healthy:
            if self.state is not MonitorState.HEALTHY:
                self.logger.info(f"目标 {self.target.name} 已恢复健康")
                self._set_state(MonitorState.HEALTHY, '探测恢复健康')
                if self.action is None:
                    await self._alert('UP', '目标已恢复健康', result)
            return self.state

        self.logger.warning(f"目标 {self.target.name} 不健康: {result.diagnostic}")

        if self.action is None:
            if self.state is MonitorState.HEALTHY:
                self._set_state(MonitorState.UNHEALTHY_RETRYING, result.diagnostic or '探测失败')
                await self._alert('DOWN', '目标不健康（未配置修复动作）', result)
            return self.state

        now = self._clock()
        self.flap_window.prune(now)
        attempts = self.flap_window.count(now)

        if attempts >= self.policy.max_restarts:
            await self._escalate(result, attempts)
            return self.state

        await self._remediate(now)
        return self.state

    async def _remediate(self, now: float):
        """记录一次修复尝试，执行修复动作，冷却后复查"""
        self.flap_window.record(now)
        attempt_no = len(self.flap_window)
        self.logger.info(
            f"目标 {self.target.name} 尝试修复 "
            f"(窗口内第 {attempt_no}/{self.policy.max_restarts} 次)")

        try:
            ack = await self.action.remediate(self.target)
        except ActionError as e:
            self.logger.error(f"目标 {self.target.name} 修复动作失败: {e.format_error()}")
            self._set_state(MonitorState.UNHEALTHY_RETRYING, f"修复动作失败: {e.message}")
            return

        self.logger.info(f"目标 {self.target.name} 修复动作已下发: {ack.detail}")
        await self._sleep(self.policy.cooldown)

        verify = await self._probe()
        if verify.is_healthy:
            self.logger.info(f"目标 {self.target.name} 修复成功")
            self._set_state(MonitorState.HEALTHY, '修复成功')
        else:
            self.logger.warning(
                f"目标 {self.target.name} 修复已下发但仍不健康: {verify.diagnostic}")
            self._set_state(MonitorState.UNHEALTHY_RETRYING, verify.diagnostic or '复查失败')

    async def _escalate(self, result: ProbeResult, attempts: int):
        """进入升级状态并发送告警，此后不再自动修复"""
        reason = (f"目标不健康且修复次数已达上限 "
                  f"({attempts} 次 / {self.policy.window:g}s)，停止自动修复")
        self.logger.error(f"目标 {self.target.name} {reason}")
        self._set_state(MonitorState.ESCALATED, reason)

        context = ''
        if self.action is not None:
            try:
                context = await self.action.collect_context(self.target)
            except Exception as e:
                context = f"无法收集诊断上下文: {e}"
                self.logger.warning(f"目标 {self.target.name} {context}")

        await self._alert('ESCALATED', reason, result, attempts=attempts, context=context)

    async def _probe(self) -> ProbeResult:
        result = await self.probe.check(self.target, self.policy.timeout)
        self.last_result = result
        return result

    async def _alert(self, status: str, reason: str, result: ProbeResult,
                     attempts: int = 0, context: str = ''):
        message = AlertMessage(
            target_name=self.target.name,
            probe_type=self.target.probe_type,
            address=self.target.address,
            status=status,
            reason=reason,
            attempt_count=attempts,
            window=self.policy.window if status == 'ESCALATED' else None,
            diagnostic=result.diagnostic,
            context=context,
            metadata={'state': self.state.value}
        )
        await self.alert_manager.dispatch(message)

    def _set_state(self, new_state: MonitorState, reason: str):
        old_state = self.state
        self.state = new_state
        if old_state is new_state:
            return

        self.logger.info(
            f"目标 {self.target.name} 状态变化: {old_state.value} -> {new_state.value} ({reason})")
        if self.on_state_change:
            try:
                self.on_state_change(StateChange(self.target.name, old_state, new_state, reason))
            except Exception as e:
                self.logger.error(f"状态变化回调执行失败: {e}")

    def reset(self):
        """人工复位：清空时间窗并回到 HEALTHY"""
        self.flap_window.clear()
        self.logger.info(f"目标 {self.target.name} 已人工复位")
        self._set_state(MonitorState.HEALTHY, '人工复位')

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        last = self.last_result
        return {
            'target': self.target.name,
            'probe_type': self.target.probe_type,
            'address': self.target.address,
            'state': self.state.value,
            'recent_attempts': self.flap_window.recent(now),
            'window': self.policy.window,
            'max_restarts': self.policy.max_restarts,
            'ticks': self.tick_count,
            'last_verdict': last.verdict.value if last else None,
            'last_diagnostic': last.diagnostic if last else None,
        }

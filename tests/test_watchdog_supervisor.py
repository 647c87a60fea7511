"""监控任务管理器测试"""

import asyncio
from unittest.mock import Mock, AsyncMock

import pytest

from ops_health.actions.base import BaseAction
from ops_health.actions.factory import ActionFactory
from ops_health.models.health_check import (
    Target, TargetPolicy, ProbeResult, Verdict, MonitorState, RemediationAck
)
from ops_health.probes.base import BaseProbe
from ops_health.probes.factory import ProbeFactory
from ops_health.services.watchdog_supervisor import WatchdogSupervisor
from ops_health.utils.exceptions import ConfigError, SchedulerError


class UpProbe(BaseProbe):
    def validate_target(self, target: Target) -> bool:
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        return ProbeResult(target.name, Verdict.HEALTHY, diagnostic='up')


class DownProbe(BaseProbe):
    def validate_target(self, target: Target) -> bool:
        return True

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        return ProbeResult(target.name, Verdict.UNHEALTHY, diagnostic='down')


class NoopAction(BaseAction):
    def validate_config(self, target: Target) -> bool:
        return bool(self.config.get('valid', True))

    async def remediate(self, target: Target) -> RemediationAck:
        return RemediationAck(target.name, self.action_type)


def make_target(name, probe_type='up', action=None, interval=10.0, cooldown=0.0):
    return Target(name=name, probe_type=probe_type, address=name, action=action,
                  policy=TargetPolicy(interval=interval, window=60, max_restarts=2,
                                      cooldown=cooldown, timeout=1))


class TestWatchdogSupervisor:
    """WatchdogSupervisor 测试类"""

    def setup_method(self):
        """测试前准备"""
        self.probes = ProbeFactory()
        self.probes.register_probe('up', UpProbe)
        self.probes.register_probe('down', DownProbe)
        self.actions = ActionFactory()
        self.actions.register_action('noop', NoopAction)

        self.alert_manager = Mock()
        self.alert_manager.dispatch = AsyncMock(return_value=True)
        self.supervisor = WatchdogSupervisor(self.alert_manager, shutdown_grace=1,
                                             probes=self.probes, actions=self.actions)

    def test_configure_builds_one_monitor_per_target(self):
        """测试为每个目标创建独立的监控"""
        self.supervisor.configure([make_target('a'), make_target('b')])

        assert set(self.supervisor.monitors) == {'a', 'b'}
        assert self.supervisor.monitors['a'].flap_window is not \
            self.supervisor.monitors['b'].flap_window

    def test_configure_rejects_duplicate_names(self):
        """测试目标名称重复"""
        with pytest.raises(ConfigError, match="目标名称重复"):
            self.supervisor.configure([make_target('a'), make_target('a')])

    def test_configure_rejects_unknown_probe_type(self):
        """测试不支持的探测类型"""
        with pytest.raises(ConfigError):
            self.supervisor.configure([make_target('a', probe_type='ftp')])

    def test_configure_wraps_action_errors(self):
        """测试修复动作配置错误转换为 ConfigError"""
        target = make_target('a', action={'type': 'noop', 'valid': False})
        with pytest.raises(ConfigError, match="配置无效"):
            self.supervisor.configure([target])

    @pytest.mark.asyncio
    async def test_start_without_targets(self):
        """测试没有目标时无法启动"""
        with pytest.raises(SchedulerError):
            await self.supervisor.start()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """测试启动与停止"""
        self.supervisor.configure([make_target('a'), make_target('b')])

        await self.supervisor.start()
        assert self.supervisor.is_running
        assert len(self.supervisor.tasks) == 2

        await asyncio.sleep(0.05)
        await self.supervisor.stop()

        assert not self.supervisor.is_running
        assert self.supervisor.tasks == {}
        assert all(m.tick_count >= 1 for m in self.supervisor.monitors.values())

    @pytest.mark.asyncio
    async def test_stop_cancels_stragglers_after_grace(self):
        """测试超过宽限时间后取消仍在冷却中的任务"""
        target = make_target('slow', probe_type='down', action={'type': 'noop'},
                             cooldown=100)
        self.supervisor.configure([target])

        await self.supervisor.start()
        await asyncio.sleep(0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await self.supervisor.stop(grace=0.1)

        assert loop.time() - started < 2
        assert self.supervisor.tasks == {}

    @pytest.mark.asyncio
    async def test_targets_are_isolated(self):
        """测试一个目标升级不影响其他目标"""
        self.supervisor.configure([
            make_target('bad', probe_type='down', action={'type': 'noop'}),
            make_target('good', action={'type': 'noop'}),
        ])
        bad = self.supervisor.monitors['bad']
        good = self.supervisor.monitors['good']

        for _ in range(3):
            await bad.tick()
            await good.tick()

        assert bad.state is MonitorState.ESCALATED
        assert good.state is MonitorState.HEALTHY
        assert len(good.flap_window) == 0

    @pytest.mark.asyncio
    async def test_reset_escalated_targets(self):
        """测试人工复位只影响已升级的目标"""
        self.supervisor.configure([
            make_target('bad', probe_type='down', action={'type': 'noop'}),
            make_target('good'),
        ])
        for _ in range(3):
            await self.supervisor.monitors['bad'].tick()

        assert self.supervisor.reset() == ['bad']
        assert self.supervisor.monitors['bad'].state is MonitorState.HEALTHY
        assert self.supervisor.reset() == []

    def test_reset_unknown_target(self):
        """测试复位不存在的目标"""
        self.supervisor.configure([make_target('a')])
        with pytest.raises(ValueError):
            self.supervisor.reset('missing')

    @pytest.mark.asyncio
    async def test_apply_targets_reconciles(self):
        """测试配置变更后新增、删除、更新目标"""
        self.supervisor.configure([make_target('keep'), make_target('drop'),
                                   make_target('change')])
        await self.supervisor.start()
        keep_monitor = self.supervisor.monitors['keep']
        keep_task = self.supervisor.tasks['keep']

        await self.supervisor.apply_targets([
            make_target('keep'),
            make_target('change', interval=5.0),
            make_target('new'),
        ])

        assert set(self.supervisor.monitors) == {'keep', 'change', 'new'}
        assert set(self.supervisor.tasks) == {'keep', 'change', 'new'}
        assert self.supervisor.monitors['keep'] is keep_monitor
        assert self.supervisor.tasks['keep'] is keep_task
        assert self.supervisor.monitors['change'].policy.interval == 5.0

        await self.supervisor.stop()

    @pytest.mark.asyncio
    async def test_apply_invalid_targets_keeps_current(self):
        """测试新配置无效时保持原有监控"""
        self.supervisor.configure([make_target('a')])

        with pytest.raises(ConfigError):
            await self.supervisor.apply_targets([make_target('b', probe_type='ftp')])

        assert set(self.supervisor.monitors) == {'a'}

    @pytest.mark.asyncio
    async def test_prepare_then_apply_targets(self):
        """测试预先校验不改动现有监控，随后按校验结果应用"""
        self.supervisor.configure([make_target('a'), make_target('b')])
        monitor_a = self.supervisor.monitors['a']

        prepared = self.supervisor.prepare_targets([make_target('a'), make_target('c')])
        assert set(self.supervisor.monitors) == {'a', 'b'}
        assert set(prepared[1]) == {'c'}

        await self.supervisor.apply_targets([make_target('a'), make_target('c')], prepared)
        assert set(self.supervisor.monitors) == {'a', 'c'}
        assert self.supervisor.monitors['a'] is monitor_a
        assert self.supervisor.monitors['c'] is prepared[1]['c']

    def test_get_status_and_stats(self):
        """测试状态信息"""
        self.supervisor.configure([make_target('a'), make_target('b')])

        status = self.supervisor.get_status()
        stats = self.supervisor.get_supervisor_stats()

        assert status['a']['state'] == 'healthy'
        assert stats['total_targets'] == 2
        assert stats['healthy'] == 2
        assert stats['escalated'] == 0
        assert stats['is_running'] is False

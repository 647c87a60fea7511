"""监控任务管理器

为每个目标运行一个独立的异步监控任务，负责启动、停止、
人工复位以及配置变更后的目标增删。
"""

import asyncio
from typing import Dict, Any, Optional, List, Callable, Tuple

from .health_monitor import HealthMonitor
from ..actions.factory import ActionFactory, action_factory
from ..alerts.manager import AlertManager
from ..models.health_check import Target, MonitorState, StateChange
from ..probes.factory import ProbeFactory, probe_factory
from ..utils.exceptions import ConfigError, OpsHealthError, SchedulerError
from ..utils.log_manager import get_logger


class WatchdogSupervisor:
    """监控任务管理器

    每个目标独立一个任务、独立一个停止信号，目标之间不共享可变状态；
    stop() 广播停止信号，等待各任务完成当前轮次，超过宽限时间后取消。
    """

    def __init__(self, alert_manager: AlertManager, shutdown_grace: float = 10.0,
                 probes: ProbeFactory = probe_factory,
                 actions: ActionFactory = action_factory):
        """
        Args:
            alert_manager: 告警管理器
            shutdown_grace: 停止时等待当前轮次完成的宽限时间（秒）
            probes: 探测器工厂
            actions: 修复动作工厂
        """
        self.alert_manager = alert_manager
        self.shutdown_grace = shutdown_grace
        self.probes = probes
        self.actions = actions
        self.monitors: Dict[str, HealthMonitor] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.stop_events: Dict[str, asyncio.Event] = {}
        self.is_running = False
        self.on_state_change: Optional[Callable[[StateChange], None]] = None
        self.logger = get_logger('supervisor')

    def build_monitor(self, target: Target) -> HealthMonitor:
        """
        为目标创建监控状态机

        Raises:
            ConfigError: 探测或修复动作配置无效
        """
        try:
            probe = self.probes.create_probe(target)
            action = self.actions.create_action(target) if target.has_action else None
        except OpsHealthError as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"目标 '{target.name}' 配置无效: {e.message}", cause=e)

        return HealthMonitor(target, probe, self.alert_manager, action=action,
                             on_state_change=self._state_changed)

    def configure(self, targets: List[Target]):
        """
        根据目标列表创建所有监控状态机，任一目标配置无效则整体失败

        Raises:
            ConfigError: 配置无效
        """
        monitors = {}
        for target in targets:
            if target.name in monitors:
                raise ConfigError(f"目标名称重复: {target.name}")
            monitors[target.name] = self.build_monitor(target)
            self.logger.info(
                f"配置目标 {target.name}: 类型={target.probe_type}, "
                f"修复={'是' if target.has_action else '否'}, 间隔={target.policy.interval}秒")
        self.monitors = monitors

    async def start(self):
        """
        为所有已配置目标启动监控任务

        Raises:
            SchedulerError: 没有配置任何目标
        """
        if self.is_running:
            self.logger.warning("监控任务已经在运行")
            return
        if not self.monitors:
            raise SchedulerError("没有配置任何监控目标")

        self.is_running = True
        for name in self.monitors:
            self._start_task(name)
        self.logger.info(f"已启动 {len(self.tasks)} 个目标监控任务")

    def _start_task(self, name: str):
        stop_event = asyncio.Event()
        self.stop_events[name] = stop_event
        task = asyncio.create_task(self.monitors[name].run(stop_event),
                                   name=f'monitor:{name}')
        self.tasks[name] = task

    async def _stop_tasks(self, names: List[str], grace: float):
        """通知指定任务停止，宽限时间内未结束的任务被取消"""
        tasks = [self.tasks[name] for name in names if name in self.tasks]
        for name in names:
            event = self.stop_events.pop(name, None)
            if event:
                event.set()

        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace)
            for task in pending:
                self.logger.warning(f"监控任务 {task.get_name()} 未在宽限时间内结束，取消")
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for name in names:
            self.tasks.pop(name, None)

    async def stop(self, grace: Optional[float] = None):
        """停止所有监控任务"""
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止所有监控任务...")
        await self._stop_tasks(list(self.tasks), self.shutdown_grace if grace is None else grace)
        self.logger.info("所有监控任务已停止")

    def prepare_targets(self, targets: List[Target]) -> Tuple[Dict[str, Target],
                                                               Dict[str, HealthMonitor]]:
        """
        校验新目标列表，为新增或变更的目标创建监控状态机，不改动运行中的监控

        Returns:
            (目标名称到目标的映射, 需要新建的监控状态机)

        Raises:
            ConfigError: 新配置无效
        """
        new_targets = {}
        for target in targets:
            if target.name in new_targets:
                raise ConfigError(f"目标名称重复: {target.name}")
            new_targets[target.name] = target

        rebuilt = {}
        for name, target in new_targets.items():
            current = self.monitors.get(name)
            if current is None or current.target != target:
                rebuilt[name] = self.build_monitor(target)
        return new_targets, rebuilt

    async def apply_targets(self, targets: List[Target],
                            prepared: Optional[Tuple[Dict[str, Target],
                                                     Dict[str, HealthMonitor]]] = None):
        """
        按新目标列表调整运行中的监控：新增启动、删除停止、变更重建。
        新配置无效时保持原有监控不变。

        Args:
            targets: 新目标列表
            prepared: prepare_targets() 的结果，已校验过时传入

        Raises:
            ConfigError: 新配置无效
        """
        new_targets, rebuilt = prepared or self.prepare_targets(targets)

        removed = [name for name in self.monitors if name not in new_targets]
        changed = [name for name in rebuilt if name in self.monitors]

        if self.is_running:
            await self._stop_tasks(removed + changed, self.shutdown_grace)

        for name in removed:
            del self.monitors[name]
            self.logger.info(f"移除目标: {name}")
        for name, monitor in rebuilt.items():
            self.logger.info(f"{'更新' if name in changed else '新增'}目标: {name}")
            self.monitors[name] = monitor
            if self.is_running:
                self._start_task(name)

    def reset(self, name: Optional[str] = None) -> List[str]:
        """
        人工复位已升级的目标

        Args:
            name: 目标名称，为 None 时复位所有已升级目标

        Returns:
            List[str]: 被复位的目标名称
        """
        if name is not None and name not in self.monitors:
            raise ValueError(f"目标 {name} 不存在")

        names = [name] if name is not None else list(self.monitors)
        reset_names = []
        for target_name in names:
            monitor = self.monitors[target_name]
            if monitor.state is MonitorState.ESCALATED:
                monitor.reset()
                reset_names.append(target_name)

        if reset_names:
            self.logger.info(f"已复位目标: {', '.join(reset_names)}")
        return reset_names

    def _state_changed(self, change: StateChange):
        if self.on_state_change:
            self.on_state_change(change)

    def get_status(self) -> Dict[str, Any]:
        """
        获取所有目标的监控状态

        Returns:
            目标名称到状态信息的映射
        """
        return {name: monitor.get_status() for name, monitor in self.monitors.items()}

    def get_supervisor_stats(self) -> Dict[str, Any]:
        states = [monitor.state for monitor in self.monitors.values()]
        return {
            'is_running': self.is_running,
            'total_targets': len(self.monitors),
            'running_tasks': sum(1 for task in self.tasks.values() if not task.done()),
            'healthy': states.count(MonitorState.HEALTHY),
            'retrying': states.count(MonitorState.UNHEALTHY_RETRYING),
            'escalated': states.count(MonitorState.ESCALATED),
        }

#!/usr/bin/env python3
"""
运维健康巡检与自愈系统主程序入口

watch 模式长期运行：按目标轮询探测、自动修复并在抖动时升级告警；
sweep 模式一次性并发巡检一组目标并输出报告。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import replace
from typing import Optional, Dict, Any, List

from ops_health.alerts.manager import AlertManager
from ops_health.models.health_check import Target, StateChange
from ops_health.services.config_manager import ConfigManager
from ops_health.services.config_watcher import ConfigWatcher
from ops_health.services.report_formatter import format_text, format_json_lines
from ops_health.services.sweep_runner import SweepRunner
from ops_health.services.target_loader import (
    build_targets, load_hosts_file, load_urls_file, DEFAULT_SLA_MS
)
from ops_health.services.watchdog_supervisor import WatchdogSupervisor
from ops_health.utils.exceptions import (
    OpsHealthError, ConfigError, LockError, SchedulerError, ErrorCode
)
from ops_health.utils.log_manager import log_manager, get_logger
from ops_health.utils.run_lock import RunLock

# 版本信息
__version__ = "1.0.0"

EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_CONFIG_ERROR = 2


class OpsHealthApp:
    """watch 模式主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行指定的日志配置，优先于配置文件
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.alert_manager: Optional[AlertManager] = None
        self.supervisor: Optional[WatchdogSupervisor] = None

        self.background_tasks = set()

    async def initialize(self):
        """初始化应用程序组件

        Raises:
            ConfigError: 配置无效
        """
        self.config_manager = ConfigManager(self.config_path)
        config = self.config_manager.load_config()
        global_config = self.config_manager.get_global_config()

        self._configure_logging(global_config)
        self.logger = get_logger('main')
        self.logger.info("开始初始化运维健康巡检系统")

        self.alert_manager = self._create_alert_manager(config)

        self.supervisor = WatchdogSupervisor(
            self.alert_manager,
            shutdown_grace=global_config.get('shutdown_grace', 10))
        self.supervisor.on_state_change = self._on_state_change
        self.supervisor.configure(build_targets(config))

        self.config_watcher = ConfigWatcher(self.config_manager)
        self.config_watcher.add_change_callback(self._on_config_changed)

        self.logger.info("应用程序组件初始化完成")

    def _configure_logging(self, global_config: Dict[str, Any]):
        """配置日志系统

        Args:
            global_config: 全局配置
        """
        log_config = {
            'log_level': global_config.get('log_level', 'INFO'),
            'log_format': global_config.get('log_format', 'text'),
            'enable_console': True,
            'enable_file': bool(global_config.get('log_file')),
        }
        if global_config.get('log_file'):
            log_config['log_file'] = global_config['log_file']
            log_config['max_file_size'] = global_config.get('max_log_size', 10 * 1024 * 1024)
            log_config['backup_count'] = global_config.get('log_backup_count', 5)

        log_config.update(self.log_overrides)
        if self.log_overrides.get('log_file'):
            log_config['enable_file'] = True
        log_manager.configure(log_config)

    @staticmethod
    def _create_alert_manager(config: Dict[str, Any]) -> AlertManager:
        global_config = config.get('global') or {}
        try:
            return AlertManager(config.get('alerts') or [],
                                alert_timeout=global_config.get('alert_timeout', 30))
        except OpsHealthError as e:
            raise ConfigError(f"告警配置无效: {e.message}", cause=e)

    def _on_state_change(self, change: StateChange):
        self.logger.debug(
            f"状态事件: {change.target_name} {change.old_state.value} -> "
            f"{change.new_state.value}")

    async def _on_config_changed(self, old_config: Dict[str, Any],
                                 new_config: Dict[str, Any]):
        """配置文件变更回调，新配置无效时保持原有监控"""
        self.logger.info("检测到配置文件变更，重新应用配置")

        # 先完成全部校验，任何一步失败都不改动运行中的组件
        targets = build_targets(new_config)
        prepared = self.supervisor.prepare_targets(targets)
        alert_manager = self._create_alert_manager(new_config)

        self._configure_logging(new_config.get('global') or {})

        # 运行中的监控持有告警管理器引用，这里替换告警器列表
        self.alert_manager.alerters = alert_manager.alerters
        self.alert_manager.alert_timeout = alert_manager.alert_timeout

        await self.supervisor.apply_targets(targets, prepared)
        self.logger.info("配置重新加载完成")

    async def start(self):
        """启动应用程序，阻塞直到收到关闭信号"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动运维健康巡检系统")

            self.config_watcher.start_watching()
            watcher_task = asyncio.create_task(
                self.config_watcher.watch(self.shutdown_event))
            self.background_tasks.add(watcher_task)
            watcher_task.add_done_callback(self.background_tasks.discard)

            await self.supervisor.start()
            self.logger.info("运维健康巡检系统启动完成")

            await self.shutdown_event.wait()
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止运维健康巡检系统...")
        self.is_running = False
        self.shutdown_event.set()

        if self.supervisor:
            await self.supervisor.stop()

        if self.config_watcher:
            self.config_watcher.stop_watching()

        for task in self.background_tasks:
            if not task.done():
                task.cancel()
        if self.background_tasks:
            await asyncio.gather(*self.background_tasks, return_exceptions=True)
        self.background_tasks.clear()

        status = self.get_status()
        self.logger.info(f"运行统计: 目标 {status.get('supervisor_stats')}, "
                         f"告警 {status.get('alert_stats')}")
        self.logger.debug(f"日志统计: {status['log_stats']}")
        self.logger.info("运维健康巡检系统已停止")

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def reset(self):
        """人工复位所有已升级的目标"""
        if self.supervisor:
            names = self.supervisor.reset()
            if not names:
                self.logger.info("收到复位信号，没有处于升级状态的目标")

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }
        if self.supervisor:
            status['supervisor_stats'] = self.supervisor.get_supervisor_stats()
            status['targets'] = self.supervisor.get_status()
        if self.alert_manager:
            status['alert_stats'] = self.alert_manager.get_alert_stats()
        status['log_stats'] = log_manager.get_log_stats()
        return status


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='ops-health',
        description='运维健康巡检系统 - 探测目标健康状态，自动修复并在抖动时升级告警',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                          # 长期运行，监控并自动修复
  %(prog)s --validate config.yaml               # 验证配置文件格式
  %(prog)s --test-alerts config.yaml            # 测试告警通道
  %(prog)s --sweep config.yaml                  # 对配置中的目标做一次巡检
  %(prog)s --hosts hosts.txt                    # 端口巡检，每行 "host port [name]"
  %(prog)s --urls urls.txt --max-ms 1500 --json # HTTP SLA 巡检，JSON 行输出

退出码:
  0  全部健康 / 正常退出
  1  巡检中存在不健康目标，或告警测试失败
  2  参数或配置错误

发送 SIGUSR1 可人工复位所有已升级的目标。
        """
    )

    parser.add_argument('config_file', nargs='?', help='YAML配置文件路径')

    parser.add_argument('--version', '-v', action='version',
                        version=f'%(prog)s {__version__}')

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--validate', action='store_true', help='验证配置文件格式并退出')
    mode.add_argument('--test-alerts', action='store_true', help='测试告警通道并退出')
    mode.add_argument('--sweep', action='store_true', help='对配置中的目标执行一次巡检后退出')

    sweep = parser.add_argument_group('巡检参数')
    sweep.add_argument('--hosts', metavar='FILE', help='端口巡检列表文件')
    sweep.add_argument('--urls', metavar='FILE', help='HTTP SLA 巡检列表文件')
    sweep.add_argument('--json', action='store_true', help='以 JSON 行格式输出报告')
    sweep.add_argument('--timeout', type=float, help='单个探测超时（秒）')
    sweep.add_argument('--max-ms', type=int, default=DEFAULT_SLA_MS,
                       help='HTTP 延迟阈值（毫秒），0 表示不检查')
    sweep.add_argument('--concurrency', type=int, help='巡检并发数')
    sweep.add_argument('--deadline', type=float, help='整次巡检截止时间（秒）')

    parser.add_argument('--lock-file', help='单实例运行锁路径，已被占用时直接退出')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='设置日志级别（覆盖配置文件设置）')
    parser.add_argument('--log-file', help='日志文件路径（覆盖配置文件设置）')
    parser.add_argument('--daemon', '-d', action='store_true', help='以守护进程模式运行')
    parser.add_argument('--pid-file', help='PID文件路径（守护进程模式）')

    return parser


def validate_config_file(config_path: str) -> int:
    """验证配置文件

    Returns:
        退出码
    """
    print(f"正在验证配置文件: {config_path}")
    try:
        config_manager = ConfigManager(config_path)
        config = config_manager.load_config()
        targets = build_targets(config)
        alert_manager = OpsHealthApp._create_alert_manager(config)
        # 创建探测器与修复动作，校验各类型特有的参数
        WatchdogSupervisor(alert_manager).configure(targets)
    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e.message}")
        return EXIT_CONFIG_ERROR

    alerts = config_manager.get_alerts_config()
    print("✅ 配置文件验证成功!")
    print(f"   - 目标数量: {len(targets)}")
    print(f"   - 告警配置数量: {len(alerts)}")

    if targets:
        print("   - 配置的目标:")
        for target in targets:
            action = target.action['type'] if target.has_action else '无修复'
            print(f"     * {target.name} ({target.probe_type} {target.address}, {action})")

    if alerts:
        print("   - 配置的告警:")
        for alert_config in alerts:
            print(f"     * {alert_config['name']} ({alert_config['type']})")

    return EXIT_OK


async def run_alert_test(config_path: str) -> int:
    """测试告警通道

    Returns:
        退出码
    """
    print(f"正在测试告警通道: {config_path}")
    try:
        config = ConfigManager(config_path).load_config()
        alert_manager = OpsHealthApp._create_alert_manager(config)
    except ConfigError as e:
        print(f"❌ 配置错误: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if await alert_manager.test_alerts():
        print("✅ 告警通道测试成功!")
        return EXIT_OK
    print("❌ 告警通道测试失败!")
    return EXIT_UNHEALTHY


def collect_sweep_targets(args: argparse.Namespace,
                          config: Dict[str, Any]) -> List[Target]:
    """根据命令行参数收集巡检目标

    Raises:
        ConfigError: 列表文件或配置无效
    """
    global_config = config.get('global') or {}
    targets: List[Target] = []

    if args.hosts:
        timeout = args.timeout or global_config.get('probe_timeout', 3)
        targets.extend(load_hosts_file(args.hosts, timeout))
    if args.urls:
        timeout = args.timeout or global_config.get('probe_timeout', 5)
        targets.extend(load_urls_file(args.urls, timeout, args.max_ms or None))
    if not args.hosts and not args.urls:
        targets = build_targets(config)
        if args.timeout:
            targets = [_with_timeout(target, args.timeout) for target in targets]
    return targets


def _with_timeout(target: Target, timeout: float) -> Target:
    return replace(target, policy=replace(target.policy, timeout=timeout))


async def run_sweep(args: argparse.Namespace) -> int:
    """执行一次批量巡检并输出报告

    Returns:
        退出码
    """
    config: Dict[str, Any] = {}
    try:
        if args.config_file:
            config = ConfigManager(args.config_file).load_config()
        global_config = config.get('global') or {}

        targets = collect_sweep_targets(args, config)
        if not targets:
            print("没有需要巡检的目标", file=sys.stderr)
            return EXIT_CONFIG_ERROR

        runner = SweepRunner(
            concurrency=args.concurrency or global_config.get('sweep_concurrency', 8),
            deadline=args.deadline or global_config.get('sweep_deadline'))
        report = await runner.run(targets)
    except (ConfigError, ValueError) as e:
        print(f"配置错误: {getattr(e, 'message', e)}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print(format_json_lines(report) if args.json else format_text(report))
    return EXIT_OK if report.ok else EXIT_UNHEALTHY


def setup_daemon_mode(pid_file: Optional[str] = None):
    """设置守护进程模式

    Args:
        pid_file: PID文件路径
    """
    try:
        pid = os.fork()
        if pid > 0:
            sys.exit(0)
    except OSError as e:
        print(f"第一次fork失败: {e}", file=sys.stderr)
        sys.exit(EXIT_UNHEALTHY)

    os.chdir("/")
    os.setsid()
    os.umask(0o022)

    try:
        pid = os.fork()
        if pid > 0:
            sys.exit(0)
    except OSError as e:
        print(f"第二次fork失败: {e}", file=sys.stderr)
        sys.exit(EXIT_UNHEALTHY)

    sys.stdout.flush()
    sys.stderr.flush()

    if pid_file:
        try:
            with open(pid_file, 'w') as f:
                f.write(str(os.getpid()))
        except OSError as e:
            print(f"写入PID文件失败: {e}", file=sys.stderr)


def install_signal_handlers(app: OpsHealthApp):
    """SIGINT/SIGTERM 触发优雅关闭，SIGUSR1 触发人工复位"""
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, app.shutdown)
    loop.add_signal_handler(signal.SIGTERM, app.shutdown)
    if hasattr(signal, 'SIGUSR1'):
        loop.add_signal_handler(signal.SIGUSR1, app.reset)


async def run_watch(args: argparse.Namespace) -> int:
    """长期运行的监控模式

    Returns:
        退出码
    """
    overrides = {}
    if args.log_level:
        overrides['log_level'] = args.log_level
    if args.log_file:
        overrides['log_file'] = args.log_file

    app = OpsHealthApp(args.config_file, overrides)
    try:
        await app.initialize()
    except ConfigError as e:
        print(f"配置错误: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    install_signal_handlers(app)

    if not args.daemon:
        print(f"ops-health v{__version__} 已启动")
        print(f"配置文件: {args.config_file}")
        print("按 Ctrl+C 停止程序")

    try:
        await app.start()
    except SchedulerError as e:
        print(f"启动失败: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    return EXIT_OK


async def main(argv: Optional[List[str]] = None) -> int:
    """主函数

    Returns:
        退出码
    """
    parser = create_argument_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_OK if e.code == 0 else EXIT_CONFIG_ERROR

    if args.hosts or args.urls:
        args.sweep = True

    if not args.config_file and not args.sweep:
        parser.print_usage(sys.stderr)
        print("缺少配置文件参数", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.config_file and not os.path.exists(args.config_file):
        print(f"配置文件不存在: {args.config_file}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.validate:
        return validate_config_file(args.config_file)

    if args.sweep:
        log_manager.configure({'log_level': args.log_level or 'WARNING',
                               'console_stream': 'stderr'})
        return await run_sweep(args)

    if args.test_alerts:
        return await run_alert_test(args.config_file)

    if args.daemon:
        setup_daemon_mode(args.pid_file)

    try:
        lock = RunLock(args.lock_file) if args.lock_file else None
        if lock:
            lock.acquire()
    except LockError as e:
        if e.error_code is ErrorCode.LOCK_HELD:
            print(f"已有实例在运行 (pid={e.holder_pid})，退出", file=sys.stderr)
            return EXIT_OK
        print(f"获取运行锁失败: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        return await run_watch(args)
    finally:
        if lock:
            lock.release()
        log_manager.cleanup()
        if args.daemon and args.pid_file and os.path.exists(args.pid_file):
            try:
                os.unlink(args.pid_file)
            except OSError:
                pass


def run():
    """命令行入口"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(EXIT_OK)


if __name__ == "__main__":
    run()

#!/usr/bin/env python3
"""
自愈与巡检演示

展示运维健康巡检系统的两种工作方式：
1. watch: 目标持续不健康时，修复次数在时间窗内达到上限后升级告警
2. sweep: 并发巡检一组端口并输出报告
"""

import asyncio
# 添加项目根目录到Python路径
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ops_health.alerts.manager import AlertManager
from ops_health.models.health_check import Target, TargetPolicy
from ops_health.services.report_formatter import format_text
from ops_health.services.sweep_runner import SweepRunner
from ops_health.services.watchdog_supervisor import WatchdogSupervisor
from ops_health.utils.log_manager import configure_logging


async def demo_watch():
    """演示抖动保护与升级告警"""
    print("🔁 1. 抖动保护演示")
    print("-" * 30)

    # 进程永远不存在，修复命令 "true" 总是成功，因此目标会反复失败
    target = Target(
        name='ghost-worker',
        probe_type='process',
        address='ops-health-demo-no-such-process',
        action={'type': 'command', 'argv': ['true']},
        policy=TargetPolicy(interval=0.3, window=10, max_restarts=2, cooldown=0.1),
    )

    alert_manager = AlertManager([{'name': 'console', 'type': 'log', 'stream': 'stderr'}],
                                 alert_timeout=5)
    supervisor = WatchdogSupervisor(alert_manager, shutdown_grace=2)
    supervisor.on_state_change = lambda change: print(
        f"   状态变化: {change.old_state.value} -> {change.new_state.value} ({change.reason})")
    supervisor.configure([target])

    await supervisor.start()
    await asyncio.sleep(2)

    status = supervisor.get_status()['ghost-worker']
    print(f"   当前状态: {status['state']}, 窗口内修复次数: {status['recent_attempts']}")

    print("   人工复位后重新开始修复")
    supervisor.reset('ghost-worker')
    await asyncio.sleep(0.5)
    await supervisor.stop()
    print()


async def demo_sweep():
    """演示一次性端口巡检"""
    print("📋 2. 批量巡检演示")
    print("-" * 30)

    server = await asyncio.start_server(lambda reader, writer: writer.close(), '127.0.0.1', 0)
    port = server.sockets[0].getsockname()[1]

    targets = [
        Target(name='demo-listener', probe_type='tcp', address=f'127.0.0.1:{port}',
               policy=TargetPolicy(timeout=2)),
        Target(name='unreachable', probe_type='tcp', address='192.0.2.1:9',
               policy=TargetPolicy(timeout=1)),
    ]

    try:
        report = await SweepRunner(concurrency=4, deadline=5).run(targets)
    finally:
        server.close()
        await server.wait_closed()

    print(format_text(report))
    print()


async def main():
    print("🚀 运维健康巡检系统演示")
    print("=" * 50)
    configure_logging({'log_level': 'WARNING', 'console_stream': 'stderr'})

    await demo_watch()
    await demo_sweep()

    print("🎉 演示完成!")


if __name__ == "__main__":
    asyncio.run(main())

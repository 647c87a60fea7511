"""Kubernetes 命名空间 Pod 阶段探测器"""

import asyncio
import json
import time
from typing import List, Tuple

from .base import BaseProbe
from .factory import register_probe
from ..models.health_check import Target, ProbeResult
from ..utils.command import run_command

DEFAULT_HEALTHY_PHASES = ('Running',)

# 诊断信息中最多列出的 Pod 数
MAX_LISTED_PODS = 5


def unhealthy_pods(pod_list: dict, healthy_phases) -> List[Tuple[str, str]]:
    """从 kubectl get pods -o json 的结果中找出阶段不在 healthy_phases 中的 Pod"""
    pods = []
    for item in pod_list.get('items') or []:
        name = (item.get('metadata') or {}).get('name', '?')
        phase = (item.get('status') or {}).get('phase') or 'Unknown'
        if phase not in healthy_phases:
            pods.append((name, phase))
    return pods


@register_probe('pods')
class PodsProbe(BaseProbe):
    """执行 kubectl get pods，命名空间内存在非 Running 的 Pod 即为不健康

    address 为命名空间；选项 healthy_phases 可放宽允许的阶段（例如加入
    Succeeded），kubectl 与 context 指定命令路径与集群上下文。
    """

    def validate_target(self, target: Target) -> bool:
        namespace = (target.address or '').strip()
        if not namespace or any(c.isspace() for c in namespace):
            self.logger.error(f"目标 {target.name} 命名空间无效: {target.address!r}")
            return False
        phases = target.options.get('healthy_phases', DEFAULT_HEALTHY_PHASES)
        if isinstance(phases, str) or not phases:
            self.logger.error(f"目标 {target.name} 的 healthy_phases 必须是非空列表")
            return False
        return True

    def _command(self, target: Target) -> List[str]:
        argv = [target.options.get('kubectl', 'kubectl'), 'get', 'pods',
                '-n', target.address.strip(), '-o', 'json']
        if target.options.get('context'):
            argv += ['--context', str(target.options['context'])]
        return argv

    async def _probe(self, target: Target, timeout: float) -> ProbeResult:
        namespace = target.address.strip()
        argv = self._command(target)
        start = time.monotonic()

        try:
            result = await run_command(argv, timeout)
        except FileNotFoundError:
            return self.unhealthy(target, start, f"命令不存在: {argv[0]}", namespace=namespace)
        except PermissionError as e:
            return self.unhealthy(target, start, f"无权限执行 {argv[0]}: {e}",
                                  namespace=namespace)
        except asyncio.TimeoutError:
            return self.unhealthy(target, start, f"kubectl get pods 超时 ({timeout}s)",
                                  namespace=namespace)

        if not result.ok:
            return self.unhealthy(target, start, f"kubectl 退出码 {result.returncode}: "
                                  f"{result.tail(1)}", namespace=namespace)
        try:
            pod_list = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            return self.unhealthy(target, start, f"无法解析 kubectl 输出: {e}",
                                  namespace=namespace)

        phases = tuple(target.options.get('healthy_phases', DEFAULT_HEALTHY_PHASES))
        total = len(pod_list.get('items') or [])
        bad = unhealthy_pods(pod_list, phases)
        if not bad:
            return self.healthy(target, start, f"命名空间 {namespace} 共 {total} 个 Pod 均正常",
                                namespace=namespace, pods=total)

        listed = ', '.join(f"{name}({phase})" for name, phase in bad[:MAX_LISTED_PODS])
        if len(bad) > MAX_LISTED_PODS:
            listed += f" 等 {len(bad)} 个"
        return self.unhealthy(target, start,
                              f"命名空间 {namespace} 有 {len(bad)} 个 Pod 未运行: {listed}",
                              namespace=namespace, pods=total,
                              unhealthy_pods=[name for name, _ in bad])

"""健康检查相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Tuple
from urllib.parse import urlparse


class Verdict(Enum):
    """单次探测的健康结论"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class MonitorState(Enum):
    """单个目标的监控状态"""
    HEALTHY = "healthy"
    UNHEALTHY_RETRYING = "unhealthy_retrying"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class TargetPolicy:
    """目标的轮询与修复策略，时间单位均为秒"""
    interval: float = 10.0
    window: float = 60.0
    max_restarts: int = 2
    cooldown: float = 5.0
    timeout: float = 5.0
    observe_when_escalated: bool = False


@dataclass(frozen=True)
class Target:
    """被检查的对象，由配置创建后不再修改"""
    name: str
    probe_type: str
    address: str
    options: Dict[str, Any] = field(default_factory=dict)
    action: Optional[Dict[str, Any]] = None
    policy: TargetPolicy = field(default_factory=TargetPolicy)

    @property
    def has_action(self) -> bool:
        return bool(self.action)


@dataclass(frozen=True)
class ProbeResult:
    """单次探测结果，每次轮询新建"""
    target_name: str
    verdict: Verdict
    timestamp: datetime = field(default_factory=datetime.now)
    latency: Optional[float] = None
    diagnostic: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.verdict is Verdict.HEALTHY

    @property
    def latency_ms(self) -> Optional[int]:
        if self.latency is None:
            return None
        return int(round(self.latency * 1000))


@dataclass
class RemediationAck:
    """修复动作已下发（不代表目标已恢复）"""
    target_name: str
    action_type: str
    detail: str = ''
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class StateChange:
    """目标监控状态变化事件"""
    target_name: str
    old_state: MonitorState
    new_state: MonitorState
    reason: str = ''
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class AlertMessage:
    """告警消息模型"""
    target_name: str
    probe_type: str
    address: str
    status: str  # "ESCALATED", "DOWN", "UP", "TEST"
    host: str = ''
    reason: str = ''
    attempt_count: int = 0
    window: Optional[float] = None
    diagnostic: Optional[str] = None
    context: str = ''
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SweepRecord:
    """批量检查中的一条 (目标, 结果) 记录"""
    target: Target
    result: ProbeResult

    @property
    def status(self) -> str:
        return 'OK' if self.result.is_healthy else 'FAIL'

    def to_dict(self) -> Dict[str, Any]:
        """输出记录字段: timestamp, host, port/url, name, status, ok"""
        record: Dict[str, Any] = {
            'timestamp': self.result.timestamp.astimezone().isoformat(timespec='seconds'),
        }
        host, port = _split_address(self.target)
        if self.target.probe_type == 'http':
            record['host'] = host
            record['url'] = self.target.address
        else:
            record['host'] = host
            if port is not None:
                record['port'] = port
        record['name'] = self.target.name
        record['status'] = self.status
        record['ok'] = 1 if self.result.is_healthy else 0
        record['latency_ms'] = self.result.latency_ms
        record['diagnostic'] = self.result.diagnostic
        return record


@dataclass(frozen=True)
class SweepReport:
    """一次批量检查的汇总，记录顺序与输入目标顺序一致"""
    records: Tuple[SweepRecord, ...]
    started_at: datetime
    finished_at: datetime

    @property
    def passed(self) -> int:
        return sum(1 for r in self.records if r.result.is_healthy)

    @property
    def failed(self) -> int:
        return len(self.records) - self.passed

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def _split_address(target: Target) -> Tuple[str, Optional[int]]:
    """从目标地址中解析出主机与端口"""
    if target.probe_type == 'http':
        parsed = urlparse(target.address)
        return parsed.hostname or '', parsed.port
    if target.probe_type == 'tcp':
        host, _, port = target.address.rpartition(':')
        if host and port.isdigit():
            return host.strip('[]'), int(port)
        if 'port' in target.options:
            return target.address, int(target.options['port'])
    return target.address, None

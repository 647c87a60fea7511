"""数据模型模块"""

from .health_check import (
    Verdict, MonitorState, TargetPolicy, Target, ProbeResult, RemediationAck,
    StateChange, AlertMessage, SweepRecord, SweepReport
)

__all__ = ['Verdict', 'MonitorState', 'TargetPolicy', 'Target', 'ProbeResult',
           'RemediationAck', 'StateChange', 'AlertMessage', 'SweepRecord',
           'SweepReport']

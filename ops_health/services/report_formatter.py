"""巡检报告输出格式"""

import json
from typing import List

from ..models.health_check import SweepReport, SweepRecord


def _label(record: SweepRecord) -> str:
    data = record.to_dict()
    if 'url' in data:
        return data['url']
    if 'port' in data:
        return f"{data['host']}:{data['port']}"
    return record.target.address


def format_text(report: SweepReport, summary: bool = True) -> str:
    """
    纯文本格式，每个目标一行，OK/FAIL 对齐

    Args:
        report: 巡检报告
        summary: 是否追加汇总行
    """
    rows = [(record.status, record.target.name, _label(record), record)
            for record in report.records]
    name_width = max((len(name) for _, name, _, _ in rows), default=0)
    label_width = max((len(label) for _, _, label, _ in rows), default=0)

    lines: List[str] = []
    for status, name, label, record in rows:
        line = f"{status:<4} {name:<{name_width}}  {label:<{label_width}}"
        latency = record.result.latency_ms
        if latency is not None:
            line += f"  {latency}ms"
        if record.result.diagnostic:
            line += f"  {record.result.diagnostic}"
        lines.append(line.rstrip())

    if summary:
        lines.append(format_summary(report))
    return '\n'.join(lines)


def format_json_lines(report: SweepReport) -> str:
    """JSON lines 格式，每个目标一行"""
    return '\n'.join(json.dumps(record.to_dict(), ensure_ascii=False)
                     for record in report.records)


def format_summary(report: SweepReport) -> str:
    total = len(report.records)
    return (f"total={total} ok={report.passed} fail={report.failed} "
            f"duration={report.duration:.2f}s")

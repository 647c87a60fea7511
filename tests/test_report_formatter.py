"""巡检报告输出测试"""

import json
from datetime import datetime, timedelta

from ops_health.models.health_check import (
    Target, ProbeResult, Verdict, SweepRecord, SweepReport
)
from ops_health.services.report_formatter import (
    format_text, format_json_lines, format_summary
)


def make_report():
    now = datetime(2024, 5, 1, 8, 30, 0)
    tcp = Target(name='db', probe_type='tcp', address='10.0.0.5', options={'port': 5432})
    http = Target(name='https://example.com/health', probe_type='http',
                  address='https://example.com/health')
    records = (
        SweepRecord(tcp, ProbeResult('db', Verdict.HEALTHY, timestamp=now, latency=0.012,
                                     diagnostic='连接 10.0.0.5:5432 成功')),
        SweepRecord(http, ProbeResult(http.name, Verdict.UNHEALTHY, timestamp=now,
                                      latency=2.0, diagnostic='code=200 latency_ms=2000')),
    )
    return SweepReport(records, now, now + timedelta(seconds=2))


class TestReportFormatter:
    """报告格式测试类"""

    def test_text_format(self):
        """测试纯文本格式"""
        text = format_text(make_report())
        lines = text.splitlines()

        assert len(lines) == 3
        assert lines[0].startswith('OK   db')
        assert '10.0.0.5:5432' in lines[0]
        assert '12ms' in lines[0]
        assert lines[1].startswith('FAIL https://example.com/health')
        assert lines[2] == 'total=2 ok=1 fail=1 duration=2.00s'

    def test_text_columns_aligned(self):
        """测试各行地址列对齐"""
        lines = format_text(make_report(), summary=False).splitlines()

        assert len(lines) == 2
        assert lines[0].index('10.0.0.5:5432') == lines[1].rindex('https://example.com/health')

    def test_json_lines_format(self):
        """测试 JSON 行格式"""
        lines = format_json_lines(make_report()).splitlines()
        first = json.loads(lines[0])
        second = json.loads(lines[1])

        assert first['host'] == '10.0.0.5'
        assert first['port'] == 5432
        assert first['name'] == 'db'
        assert first['status'] == 'OK'
        assert first['ok'] == 1
        assert first['latency_ms'] == 12
        assert 'url' not in first

        assert second['url'] == 'https://example.com/health'
        assert second['host'] == 'example.com'
        assert second['status'] == 'FAIL'
        assert second['ok'] == 0
        assert 'port' not in second

    def test_summary(self):
        """测试汇总行"""
        assert format_summary(make_report()) == 'total=2 ok=1 fail=1 duration=2.00s'

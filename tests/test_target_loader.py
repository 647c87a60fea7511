"""目标构建测试"""

import os
import tempfile

import pytest

from ops_health.models.health_check import TargetPolicy
from ops_health.services.target_loader import (
    build_policy, build_targets, load_hosts_file, load_urls_file
)
from ops_health.utils.exceptions import ConfigError


def write_list(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.txt', delete=False,
                                     encoding='utf-8') as f:
        f.write(content)
        return f.name


class TestBuildPolicy:
    """策略合并测试"""

    def test_defaults(self):
        assert build_policy({}) == TargetPolicy()

    def test_target_overrides_global(self):
        global_config = {'check_interval': 30, 'max_restarts': 5, 'probe_timeout': 2}
        policy = build_policy(global_config, {'check_interval': 5, 'observe_when_escalated': True})

        assert policy.interval == 5
        assert policy.max_restarts == 5
        assert policy.timeout == 2
        assert policy.observe_when_escalated is True

    def test_zero_restarts_kept(self):
        assert build_policy({'max_restarts': 2}, {'max_restarts': 0}).max_restarts == 0


class TestBuildTargets:
    """从配置构建目标测试"""

    def test_build_in_config_order(self):
        config = {
            'global': {'flap_window': 120},
            'targets': {
                'nginx': {'type': 'unit', 'address': 'nginx',
                          'action': {'type': 'systemd_restart'}},
                'api': {'type': 'http', 'address': ' http://127.0.0.1/health ',
                        'max_latency_ms': 500, 'expected_status': [200, 204], 'timeout': 1},
            },
        }
        nginx, api = build_targets(config)

        assert nginx.name == 'nginx'
        assert nginx.has_action
        assert nginx.policy.window == 120
        assert api.address == 'http://127.0.0.1/health'
        assert api.options == {'max_latency_ms': 500, 'expected_status': [200, 204]}
        assert api.action is None
        assert api.policy.timeout == 1

    def test_empty(self):
        assert build_targets({}) == []
        assert build_targets({'targets': None}) == []

    def test_invalid_target(self):
        with pytest.raises(ConfigError):
            build_targets({'targets': {'web': {'type': 'unit'}}})


class TestListFiles:
    """纯文本列表文件测试"""

    def test_load_hosts_file(self):
        path = write_list("# inventory\n10.0.0.5 5432 primary db\n\nweb-01 443  # https\n")
        try:
            db, web = load_hosts_file(path, timeout=1.5)
        finally:
            os.unlink(path)

        assert db.name == 'primary db'
        assert db.probe_type == 'tcp'
        assert db.address == '10.0.0.5'
        assert db.options == {'port': 5432}
        assert db.policy.timeout == 1.5
        assert web.name == 'web-01:443'

    @pytest.mark.parametrize('line', ['web-01', 'web-01 https', 'web-01 70000'])
    def test_invalid_hosts_line(self, line):
        path = write_list(line + '\n')
        try:
            with pytest.raises(ConfigError, match=':1 '):
                load_hosts_file(path)
        finally:
            os.unlink(path)

    def test_load_urls_file(self):
        path = write_list("https://example.com/health\nhttp://10.0.0.7:8080/ready  # backend\n")
        try:
            first, second = load_urls_file(path, max_ms=800)
        finally:
            os.unlink(path)

        assert first.name == 'https://example.com/health'
        assert first.probe_type == 'http'
        assert first.options == {'max_latency_ms': 800}
        assert second.address == 'http://10.0.0.7:8080/ready'

    def test_urls_without_sla(self):
        path = write_list("https://example.com/\n")
        try:
            (target,) = load_urls_file(path, max_ms=None)
        finally:
            os.unlink(path)
        assert target.options == {}

    def test_invalid_url(self):
        path = write_list("example.com/health\n")
        try:
            with pytest.raises(ConfigError, match="URL 无效"):
                load_urls_file(path)
        finally:
            os.unlink(path)

    def test_missing_file(self):
        with pytest.raises(ConfigError, match="无法读取列表文件"):
            load_hosts_file('/nonexistent/hosts.txt')

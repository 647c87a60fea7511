"""CLI接口功能测试"""

import asyncio
import json
import os
import socket
import tempfile

import pytest
import yaml

from main import (
    OpsHealthApp,
    create_argument_parser,
    validate_config_file,
    run_alert_test,
    collect_sweep_targets,
    main,
    __version__,
    EXIT_OK,
    EXIT_UNHEALTHY,
    EXIT_CONFIG_ERROR
)
from ops_health.utils.exceptions import ConfigError
from ops_health.utils.run_lock import RunLock


def write_file(content, suffix='.yaml'):
    with tempfile.NamedTemporaryFile(mode='w', suffix=suffix, delete=False,
                                     encoding='utf-8') as f:
        f.write(content)
        return f.name


def write_config(config):
    return write_file(yaml.safe_dump(config, allow_unicode=True))


def closed_port():
    """获取一个当前没有监听的本地端口"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


VALID_CONFIG = {
    'global': {'check_interval': 10, 'flap_window': 60, 'max_restarts': 2},
    'targets': {
        'nginx': {'type': 'unit', 'address': 'nginx',
                  'action': {'type': 'systemd_restart'}},
        'api': {'type': 'http', 'address': 'http://127.0.0.1:8080/health'},
    },
    'alerts': [{'name': 'local', 'type': 'log', 'stream': 'stderr'}],
}


class TestArgumentParser:
    """命令行参数解析器测试"""

    def test_create_argument_parser(self):
        parser = create_argument_parser()
        assert parser.prog == 'ops-health'

    def test_parse_basic_args(self):
        args = create_argument_parser().parse_args(['config.yaml'])

        assert args.config_file == 'config.yaml'
        assert not args.validate
        assert not args.sweep
        assert args.max_ms == 1500
        assert args.lock_file is None

    def test_sweep_options(self):
        args = create_argument_parser().parse_args(
            ['--urls', 'urls.txt', '--json', '--max-ms', '800', '--concurrency', '4',
             '--deadline', '20'])

        assert args.urls == 'urls.txt'
        assert args.json
        assert args.max_ms == 800
        assert args.concurrency == 4
        assert args.deadline == 20.0

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_argument_parser().parse_args(['--validate', '--sweep', 'config.yaml'])


class TestValidateConfig:
    """配置验证命令测试"""

    def test_valid_config(self, capsys):
        config_path = write_config(VALID_CONFIG)
        try:
            assert validate_config_file(config_path) == EXIT_OK
        finally:
            os.unlink(config_path)

        output = capsys.readouterr().out
        assert "配置文件验证成功" in output
        assert "nginx (unit nginx, systemd_restart)" in output

    def test_invalid_probe_address(self, capsys):
        """测试探测器特有参数在验证阶段被检查"""
        config = {'targets': {'db': {'type': 'tcp', 'address': 'db-without-port'}}}
        config_path = write_config(config)
        try:
            assert validate_config_file(config_path) == EXIT_CONFIG_ERROR
        finally:
            os.unlink(config_path)

        assert "配置文件验证失败" in capsys.readouterr().out

    def test_invalid_alert(self):
        config = dict(VALID_CONFIG, alerts=[{'name': 'hook', 'type': 'http', 'url': 'not-a-url'}])
        config_path = write_config(config)
        try:
            assert validate_config_file(config_path) == EXIT_CONFIG_ERROR
        finally:
            os.unlink(config_path)


class TestAlertTest:
    """告警测试命令"""

    @pytest.mark.asyncio
    async def test_log_alerter(self, capsys):
        config_path = write_config(VALID_CONFIG)
        try:
            assert await run_alert_test(config_path) == EXIT_OK
        finally:
            os.unlink(config_path)

        captured = capsys.readouterr()
        assert "告警通道测试成功" in captured.out
        assert "TEST" in captured.err

    @pytest.mark.asyncio
    async def test_without_alerters(self):
        config_path = write_config({'global': {'check_interval': 10}})
        try:
            assert await run_alert_test(config_path) == EXIT_UNHEALTHY
        finally:
            os.unlink(config_path)


class TestSweepTargets:
    """巡检目标收集测试"""

    def test_timeout_override_for_config_targets(self):
        args = create_argument_parser().parse_args(['--sweep', '--timeout', '1.5', 'x.yaml'])
        targets = collect_sweep_targets(args, VALID_CONFIG)

        assert [t.name for t in targets] == ['nginx', 'api']
        assert all(t.policy.timeout == 1.5 for t in targets)

    def test_max_ms_zero_disables_sla(self):
        urls_path = write_file("https://example.com/\n", suffix='.txt')
        try:
            args = create_argument_parser().parse_args(['--urls', urls_path, '--max-ms', '0'])
            (target,) = collect_sweep_targets(args, {})
        finally:
            os.unlink(urls_path)
        assert 'max_latency_ms' not in target.options


class TestMain:
    """主函数测试"""

    @pytest.mark.asyncio
    async def test_version(self, capsys):
        assert await main(['--version']) == EXIT_OK
        assert __version__ in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_unknown_option(self):
        assert await main(['--no-such-flag']) == EXIT_CONFIG_ERROR

    @pytest.mark.asyncio
    async def test_missing_config_argument(self):
        assert await main([]) == EXIT_CONFIG_ERROR

    @pytest.mark.asyncio
    async def test_config_not_found(self):
        assert await main(['/nonexistent/ops-health.yaml']) == EXIT_CONFIG_ERROR

    @pytest.mark.asyncio
    async def test_hosts_sweep(self, capsys):
        """测试端口巡检输出与退出码"""
        server = await asyncio.start_server(lambda r, w: w.close(), '127.0.0.1', 0)
        open_port = server.sockets[0].getsockname()[1]
        hosts_path = write_file(
            f"127.0.0.1 {open_port} listener\n127.0.0.1 {closed_port()} nothing\n",
            suffix='.txt')
        try:
            exit_code = await main(['--hosts', hosts_path, '--timeout', '2'])
        finally:
            os.unlink(hosts_path)
            server.close()
            await server.wait_closed()

        lines = capsys.readouterr().out.strip().splitlines()
        assert exit_code == EXIT_UNHEALTHY
        assert lines[0].startswith('OK   listener')
        assert lines[1].startswith('FAIL nothing')
        assert lines[2].startswith('total=2 ok=1 fail=1')

    @pytest.mark.asyncio
    async def test_hosts_sweep_json(self, capsys):
        server = await asyncio.start_server(lambda r, w: w.close(), '127.0.0.1', 0)
        open_port = server.sockets[0].getsockname()[1]
        hosts_path = write_file(f"127.0.0.1 {open_port}\n", suffix='.txt')
        try:
            exit_code = await main(['--hosts', hosts_path, '--json'])
        finally:
            os.unlink(hosts_path)
            server.close()
            await server.wait_closed()

        record = json.loads(capsys.readouterr().out.strip())
        assert exit_code == EXIT_OK
        assert record['name'] == f'127.0.0.1:{open_port}'
        assert record['port'] == open_port
        assert record['ok'] == 1

    @pytest.mark.asyncio
    async def test_sweep_without_targets(self):
        hosts_path = write_file("# nothing yet\n", suffix='.txt')
        try:
            assert await main(['--hosts', hosts_path]) == EXIT_CONFIG_ERROR
        finally:
            os.unlink(hosts_path)

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        hosts_path = write_file("127.0.0.1 22\n", suffix='.txt')
        try:
            assert await main(['--hosts', hosts_path, '--concurrency', '-1']) == \
                EXIT_CONFIG_ERROR
        finally:
            os.unlink(hosts_path)

    @pytest.mark.asyncio
    async def test_lock_held_exits_quietly(self, capsys):
        """测试已有实例持有运行锁时直接退出"""
        config_path = write_config(VALID_CONFIG)
        with tempfile.TemporaryDirectory() as tmpdir:
            lock_path = os.path.join(tmpdir, 'ops-health.lock')
            try:
                with RunLock(lock_path):
                    assert await main(['--lock-file', lock_path, config_path]) == EXIT_OK
            finally:
                os.unlink(config_path)

        assert "已有实例在运行" in capsys.readouterr().err


class TestOpsHealthApp:
    """watch 模式主应用测试"""

    @pytest.mark.asyncio
    async def test_initialize(self):
        config_path = write_config(VALID_CONFIG)
        try:
            app = OpsHealthApp(config_path, {'log_level': 'WARNING'})
            await app.initialize()
        finally:
            os.unlink(config_path)

        status = app.get_status()
        assert status['is_running'] is False
        assert sorted(status['targets']) == ['api', 'nginx']
        assert status['alert_stats']['alerters'] == ['local']
        assert 'log_stats' in status

    @pytest.mark.asyncio
    async def test_config_change_applies_targets_and_alerters(self):
        """测试配置变更后更新目标与告警器"""
        config_path = write_config(VALID_CONFIG)
        try:
            app = OpsHealthApp(config_path, {'log_level': 'WARNING'})
            await app.initialize()
        finally:
            os.unlink(config_path)

        alert_manager = app.alert_manager
        new_config = dict(VALID_CONFIG,
                          targets={'sshd': {'type': 'tcp', 'address': '127.0.0.1:22'}},
                          alerts=[{'name': 'hook', 'type': 'http',
                                   'url': 'https://hooks.example.com/x'}])
        await app._on_config_changed(VALID_CONFIG, new_config)

        assert list(app.supervisor.monitors) == ['sshd']
        assert app.alert_manager is alert_manager
        assert alert_manager.get_alerter_names() == ['hook']

    @pytest.mark.asyncio
    async def test_invalid_config_change_keeps_monitors(self):
        config_path = write_config(VALID_CONFIG)
        try:
            app = OpsHealthApp(config_path, {'log_level': 'WARNING'})
            await app.initialize()
        finally:
            os.unlink(config_path)

        broken = dict(VALID_CONFIG,
                      targets={'db': {'type': 'tcp', 'address': 'no-port'}},
                      alerts=[{'name': 'hook', 'type': 'http',
                               'url': 'https://hooks.example.com/x'}])
        with pytest.raises(ConfigError):
            await app._on_config_changed(VALID_CONFIG, broken)

        assert sorted(app.supervisor.monitors) == ['api', 'nginx']
        assert app.alert_manager.get_alerter_names() == ['local']

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        """测试启动后收到关闭信号时优雅退出"""
        config = {
            'global': {'check_interval': 0.1, 'shutdown_grace': 1},
            'targets': {'gone': {'type': 'tcp', 'address': f'127.0.0.1:{closed_port()}',
                                 'timeout': 0.5}},
            'alerts': [{'name': 'local', 'type': 'log', 'stream': 'log'}],
        }
        config_path = write_config(config)
        try:
            app = OpsHealthApp(config_path, {'log_level': 'WARNING'})
            await app.initialize()
            task = asyncio.create_task(app.start())
            await asyncio.sleep(0.3)

            assert app.is_running
            app.shutdown()
            await asyncio.wait_for(task, 5)
        finally:
            os.unlink(config_path)

        assert app.is_running is False
        assert app.get_status()['targets']['gone']['state'] == 'unhealthy_retrying'

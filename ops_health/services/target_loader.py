"""从配置或纯文本列表构建检查目标"""

from typing import Dict, Any, List, Optional

from ..models.health_check import Target, TargetPolicy
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError

# 目标级配置项 -> TargetPolicy 字段，未配置时取 global 中的同名项
POLICY_KEYS = {
    'check_interval': 'interval',
    'flap_window': 'window',
    'max_restarts': 'max_restarts',
    'restart_cooldown': 'cooldown',
    'observe_when_escalated': 'observe_when_escalated',
}

# 目标配置中的非探测参数
RESERVED_KEYS = set(POLICY_KEYS) | {'type', 'address', 'action', 'timeout'}

DEFAULT_SLA_MS = 1500


def build_policy(global_config: Dict[str, Any],
                 target_config: Optional[Dict[str, Any]] = None) -> TargetPolicy:
    """
    合并全局默认值与目标级覆盖

    Args:
        global_config: global 配置段
        target_config: 单个目标配置

    Returns:
        TargetPolicy: 目标策略
    """
    target_config = target_config or {}
    values = {}
    for key, field_name in POLICY_KEYS.items():
        value = target_config.get(key, global_config.get(key))
        if value is not None:
            values[field_name] = value

    timeout = target_config.get('timeout', global_config.get('probe_timeout'))
    if timeout is not None:
        values['timeout'] = timeout
    return TargetPolicy(**values)


def build_targets(config: Dict[str, Any]) -> List[Target]:
    """
    根据完整配置构建目标列表，保持配置文件中的顺序

    Raises:
        ConfigError: 目标配置无效
    """
    global_config = config.get('global') or {}
    targets = []
    for name, target_config in (config.get('targets') or {}).items():
        ConfigValidator.validate_target_config(name, target_config)
        options = {k: v for k, v in target_config.items() if k not in RESERVED_KEYS}
        targets.append(Target(
            name=str(name),
            probe_type=target_config['type'],
            address=target_config['address'].strip(),
            options=options,
            action=target_config.get('action') or None,
            policy=build_policy(global_config, target_config),
        ))
    return targets


def _read_lines(path: str) -> List[tuple]:
    """读取列表文件，跳过空行与 # 注释，返回 (行号, 内容)"""
    try:
        with open(path, 'r', encoding='utf-8') as file:
            raw_lines = file.readlines()
    except OSError as e:
        raise ConfigError(f"无法读取列表文件 {path}: {e}", config_path=path)

    lines = []
    for lineno, line in enumerate(raw_lines, 1):
        line = line.split('#', 1)[0].strip()
        if line:
            lines.append((lineno, line))
    return lines


def load_hosts_file(path: str, timeout: float = 3.0) -> List[Target]:
    """
    读取端口巡检列表，每行 "host port [name]"

    Args:
        path: 列表文件路径
        timeout: 单个探测超时（秒）

    Raises:
        ConfigError: 文件无法读取或行格式无效
    """
    policy = TargetPolicy(timeout=timeout)
    targets = []
    for lineno, line in _read_lines(path):
        fields = line.split()
        if len(fields) < 2:
            raise ConfigError(f"{path}:{lineno} 格式无效，应为 'host port [name]': {line}",
                              config_path=path)
        host, port = fields[0], fields[1]
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ConfigError(f"{path}:{lineno} 端口无效: {port}", config_path=path)

        name = ' '.join(fields[2:]) or f"{host}:{port}"
        targets.append(Target(name=name, probe_type='tcp', address=host,
                              options={'port': int(port)}, policy=policy))
    return targets


def load_urls_file(path: str, timeout: float = 5.0,
                   max_ms: Optional[int] = DEFAULT_SLA_MS) -> List[Target]:
    """
    读取 HTTP SLA 巡检列表，每行一个 URL

    Args:
        path: 列表文件路径
        timeout: 单个请求超时（秒）
        max_ms: 延迟阈值（毫秒），为 None 时不检查延迟

    Raises:
        ConfigError: 文件无法读取或 URL 无效
    """
    policy = TargetPolicy(timeout=timeout)
    options = {'max_latency_ms': max_ms} if max_ms is not None else {}
    targets = []
    for lineno, line in _read_lines(path):
        url = line.split()[0]
        if not url.startswith(('http://', 'https://')):
            raise ConfigError(f"{path}:{lineno} URL 无效: {url}", config_path=path)
        targets.append(Target(name=url, probe_type='http', address=url,
                              options=dict(options), policy=policy))
    return targets

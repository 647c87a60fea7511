"""
日志管理器模块

提供统一的日志记录功能，支持控制台和轮转文件输出、
日志级别配置，以及文本 / JSON 行两种输出格式。
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List
from enum import Enum


class LogLevel(Enum):
    """日志级别枚举"""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


# LogRecord 自带属性，JSON 输出时不当作附加字段
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


class JsonLineFormatter(logging.Formatter):
    """每条日志输出为一行 JSON 对象"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).astimezone().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            payload[key] = value
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class LogManager:
    """
    日志管理器类

    提供统一的日志记录功能，支持：
    - 控制台和文件日志输出
    - 日志级别配置
    - 文本或 JSON 行格式
    - 日志轮转和文件大小管理
    """

    _instance: Optional['LogManager'] = None
    _initialized: bool = False

    def __new__(cls) -> 'LogManager':
        """单例模式实现"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """初始化日志管理器"""
        if self._initialized:
            return

        self._loggers: Dict[str, logging.Logger] = {}
        self._file_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )
        self._console_format = '%(asctime)s - %(levelname)s - %(message)s'
        self._date_format = '%Y-%m-%d %H:%M:%S'

        self._log_level = LogLevel.INFO
        self._log_format = 'text'
        self._log_file: Optional[str] = None
        self._max_file_size = 10 * 1024 * 1024  # 10MB
        self._backup_count = 5
        self._enable_console = True
        self._console_stream = 'stdout'
        self._enable_file = False

        self._initialized = True

    def configure(self, config: Dict[str, Any]) -> None:
        """
        配置日志管理器，已创建的日志记录器会按新配置重建处理器

        Args:
            config: 日志配置字典，包含以下可选键：
                - log_level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                - log_format: 输出格式 (text, json)
                - log_file: 日志文件路径
                - max_file_size: 最大文件大小（字节）
                - backup_count: 备份文件数量
                - enable_console: 是否启用控制台输出
                - console_stream: 控制台输出流 (stdout, stderr)
                - enable_file: 是否启用文件输出
        """
        if 'log_level' in config:
            level_str = str(config['log_level']).upper()
            if level_str not in LogLevel.__members__:
                raise ValueError(f"无效的日志级别: {level_str}")
            self._log_level = LogLevel[level_str]

        if 'log_format' in config:
            log_format = str(config['log_format']).lower()
            if log_format not in ('text', 'json'):
                raise ValueError(f"无效的日志格式: {log_format}")
            self._log_format = log_format

        if config.get('log_file'):
            self._log_file = config['log_file']
            self._enable_file = True

        if 'max_file_size' in config:
            self._max_file_size = config['max_file_size']

        if 'backup_count' in config:
            self._backup_count = config['backup_count']

        if 'enable_console' in config:
            self._enable_console = config['enable_console']

        if 'enable_file' in config:
            self._enable_file = config['enable_file']

        if 'console_stream' in config:
            if config['console_stream'] not in ('stdout', 'stderr'):
                raise ValueError(f"无效的控制台输出流: {config['console_stream']}")
            self._console_stream = config['console_stream']

        for logger in self._loggers.values():
            self._install_handlers(logger)

    def get_logger(self, name: str) -> logging.Logger:
        """
        获取指定名称的日志记录器

        Args:
            name: 日志记录器名称

        Returns:
            配置好的日志记录器实例
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(f'ops_health.{name}')
        self._install_handlers(logger)

        # 防止日志向上传播
        logger.propagate = False

        self._loggers[name] = logger
        return logger

    def _install_handlers(self, logger: logging.Logger) -> None:
        """按当前配置替换日志记录器的处理器"""
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        logger.setLevel(self._log_level.value)
        for handler in self._build_handlers():
            logger.addHandler(handler)

    def _build_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []

        if self._enable_console:
            console_handler = logging.StreamHandler(
                sys.stderr if self._console_stream == 'stderr' else sys.stdout)
            console_handler.setLevel(self._log_level.value)
            console_handler.setFormatter(self._make_formatter(self._console_format))
            handlers.append(console_handler)

        if self._enable_file and self._log_file:
            self._ensure_log_directory()
            file_handler = logging.handlers.RotatingFileHandler(
                self._log_file,
                maxBytes=self._max_file_size,
                backupCount=self._backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(self._log_level.value)
            file_handler.setFormatter(self._make_formatter(self._file_format))
            handlers.append(file_handler)

        return handlers

    def _make_formatter(self, text_format: str) -> logging.Formatter:
        if self._log_format == 'json':
            return JsonLineFormatter()
        return logging.Formatter(text_format, datefmt=self._date_format)

    def _ensure_log_directory(self) -> None:
        """确保日志目录存在"""
        if self._log_file:
            Path(self._log_file).parent.mkdir(parents=True, exist_ok=True)

    def get_log_stats(self) -> Dict[str, Any]:
        """
        获取日志统计信息

        Returns:
            包含日志统计信息的字典
        """
        stats = {
            'loggers_count': len(self._loggers),
            'log_level': self._log_level.name,
            'log_format': self._log_format,
            'file_logging_enabled': self._enable_file,
            'console_logging_enabled': self._enable_console,
            'log_file': self._log_file,
            'max_file_size': self._max_file_size,
            'backup_count': self._backup_count
        }

        if self._log_file and os.path.exists(self._log_file):
            stats['current_log_size'] = os.path.getsize(self._log_file)

        return stats

    def cleanup(self) -> None:
        """关闭所有处理器"""
        for logger in self._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

        self._loggers.clear()


# 全局日志管理器实例
log_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """
    获取日志记录器的便捷函数

    Args:
        name: 日志记录器名称

    Returns:
        配置好的日志记录器实例
    """
    return log_manager.get_logger(name)


def configure_logging(config: Dict[str, Any]) -> None:
    """
    配置日志系统的便捷函数

    Args:
        config: 日志配置字典
    """
    log_manager.configure(config)

"""配置文件监控器"""

import asyncio
import os
from typing import Callable, Optional, List, Awaitable, Dict, Any
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler
from .config_manager import ConfigManager
from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger

ConfigCallback = Callable[[Dict[str, Any], Dict[str, Any]], Awaitable[None]]


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器，运行在 watchdog 线程中"""

    def __init__(self, config_path: str, callback: Callable[[], None]):
        """
        Args:
            config_path: 配置文件绝对路径
            callback: 检测到变更时调用，必须是线程安全的
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = get_logger('config_watcher')

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, 'dest_path', '')]
        return self.config_path in [os.path.abspath(p) for p in paths if p]

    def on_modified(self, event):
        if self._matches(event):
            self.logger.debug(f"检测到配置文件变更: {self.config_path}")
            self.callback()

    # 编辑器通常以 "写临时文件再改名" 的方式保存
    on_created = on_modified
    on_moved = on_modified


class ConfigWatcher:
    """配置文件监控器，支持热更新

    watchdog 线程只负责把变更通知投递到事件循环，重新加载和回调都在
    事件循环中执行；文件修改时间兜底轮询，防止文件系统事件丢失。
    """

    def __init__(self, config_manager: ConfigManager, debounce: float = 0.5):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
            debounce: 收到变更通知后等待的时间（秒），合并连续写入
        """
        self.config_manager = config_manager
        self.debounce = debounce
        self.observer: Optional[Observer] = None
        self.logger = get_logger('config_watcher')
        self.change_callbacks: List[ConfigCallback] = []
        self._changed: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    def add_change_callback(self, callback: ConfigCallback):
        """
        添加配置变更回调函数

        Args:
            callback: 异步回调，参数为 (旧配置, 新配置)
        """
        self.change_callbacks.append(callback)

    def remove_change_callback(self, callback: ConfigCallback):
        if callback in self.change_callbacks:
            self.change_callbacks.remove(callback)

    async def _on_config_changed(self) -> bool:
        """
        重新加载配置并调用回调，新配置无效时保持原配置

        Returns:
            bool: 是否成功应用新配置
        """
        old_config = self.config_manager.config.copy()
        try:
            new_config = self.config_manager.reload_config()
        except ConfigError as e:
            self.logger.error(f"配置重新加载失败，继续使用原配置: {e.message}")
            # 避免同一个无效文件被反复加载
            self.config_manager.last_modified = self._current_mtime()
            return False

        self.logger.info("配置文件已重新加载")

        for callback in self.change_callbacks:
            try:
                await callback(old_config, new_config)
            except ConfigError as e:
                self.logger.error(f"应用新配置失败: {e.message}")
            except Exception as e:
                self.logger.error(f"配置变更回调执行失败: {e}", exc_info=True)
        return True

    def _current_mtime(self) -> Optional[float]:
        try:
            return os.path.getmtime(self.config_manager.config_path)
        except OSError:
            return self.config_manager.last_modified

    def _notify(self):
        """由 watchdog 线程调用"""
        if self._loop is not None and self._changed is not None:
            self._loop.call_soon_threadsafe(self._changed.set)

    def start_watching(self):
        """
        开始监控配置文件，必须在事件循环中调用

        Raises:
            ConfigError: 启动监控失败
        """
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        self._loop = asyncio.get_running_loop()
        self._changed = asyncio.Event()
        config_path = os.path.abspath(self.config_manager.config_path)

        try:
            self.observer = Observer()
            self.observer.schedule(ConfigFileHandler(config_path, self._notify),
                                   os.path.dirname(config_path), recursive=False)
            self.observer.start()
        except OSError as e:
            self.observer = None
            self.logger.error(f"启动配置监控失败: {e}")
            raise ConfigError(f"启动配置监控失败: {e}", config_path=config_path)

        self._running = True
        self.logger.info(f"开始监控配置文件: {config_path}")

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        return self._running

    async def watch(self, stop_event: asyncio.Event, check_interval: float = 5):
        """
        处理配置变更直到 stop_event 置位

        Args:
            stop_event: 停止信号
            check_interval: 兜底轮询间隔（秒）
        """
        if self._changed is None:
            self._changed = asyncio.Event()

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(self._changed.wait(), check_interval)
            except asyncio.TimeoutError:
                pass

            if stop_event.is_set():
                break

            if self._changed.is_set():
                self._changed.clear()
                await asyncio.sleep(self.debounce)
                self._changed.clear()

            if self.config_manager.is_config_changed():
                self.logger.info("检测到配置文件变更")
                await self._on_config_changed()

        self.logger.info("配置监控任务已结束")

    async def __aenter__(self):
        self.start_watching()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.stop_watching()

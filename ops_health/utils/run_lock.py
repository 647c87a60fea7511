"""单实例运行锁

通过原子的 mkdir 获取锁，锁目录中写入持有者 PID；
只有持有者在退出时删除锁目录。
"""

import os
import shutil
from typing import Optional

from .exceptions import LockError, ErrorCode
from .log_manager import get_logger


class RunLock:
    """排他运行锁，作为上下文管理器使用

    with RunLock('/var/run/ops-health.lock'):
        ...
    """

    def __init__(self, path: str):
        """
        Args:
            path: 锁路径，实际创建 "<path>.d" 目录
        """
        self.path = path
        self.lock_dir = f"{path}.d"
        self.pid_file = os.path.join(self.lock_dir, 'pid')
        self.acquired = False
        self.logger = get_logger('run_lock')

    def holder_pid(self) -> Optional[int]:
        """读取当前持有者的 PID，无法读取时返回 None"""
        try:
            with open(self.pid_file, 'r', encoding='utf-8') as file:
                return int(file.read().strip())
        except (OSError, ValueError):
            return None

    def acquire(self):
        """
        获取锁

        Raises:
            LockError: 锁已被其他进程持有（LOCK_HELD）或无法创建
        """
        try:
            os.mkdir(self.lock_dir)
        except FileExistsError:
            pid = self.holder_pid()
            raise LockError(f"运行锁已被占用: {self.lock_dir} (pid={pid})",
                            error_code=ErrorCode.LOCK_HELD,
                            lock_path=self.lock_dir, holder_pid=pid)
        except OSError as e:
            raise LockError(f"无法创建运行锁 {self.lock_dir}: {e}",
                            lock_path=self.lock_dir, cause=e)

        self.acquired = True
        try:
            with open(self.pid_file, 'w', encoding='utf-8') as file:
                file.write(str(os.getpid()))
        except OSError as e:
            self.release()
            raise LockError(f"无法写入锁文件 {self.pid_file}: {e}",
                            lock_path=self.lock_dir, cause=e)

        self.logger.debug(f"已获取运行锁: {self.lock_dir}")

    def release(self):
        """释放锁，未持有时不做任何事"""
        if not self.acquired:
            return
        self.acquired = False
        shutil.rmtree(self.lock_dir, ignore_errors=True)
        self.logger.debug(f"已释放运行锁: {self.lock_dir}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

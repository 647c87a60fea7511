"""修复次数滑动时间窗

记录单个目标在最近 W 秒内的修复尝试时间戳，用于抖动保护。
过期记录在每次 record / count 时惰性清理，不依赖后台定时器。
"""

from collections import deque
from typing import Deque, List


class FlapWindow:
    """修复尝试的滑动时间窗，只由所属监控任务访问"""

    def __init__(self, window: float):
        """
        Args:
            window: 时间窗长度（秒），必须为正数
        """
        if window <= 0:
            raise ValueError("时间窗长度必须为正数")
        self.window = window
        self._attempts: Deque[float] = deque()

    def record(self, now: float):
        """在 now 时刻记录一次修复尝试"""
        self.prune(now)
        if self._attempts and now < self._attempts[-1]:
            # 时钟回拨时保持时间戳有序
            now = self._attempts[-1]
        self._attempts.append(now)

    def prune(self, now: float):
        """丢弃所有 now - t > window 的记录"""
        while self._attempts and now - self._attempts[0] > self.window:
            self._attempts.popleft()

    def count(self, now: float) -> int:
        """清理过期记录后返回窗口内的尝试次数"""
        self.prune(now)
        return len(self._attempts)

    def recent(self, now: float) -> int:
        """只读统计窗口内的尝试次数，不清理记录"""
        return sum(1 for t in self._attempts if now - t <= self.window)

    def clear(self):
        self._attempts.clear()

    def snapshot(self) -> List[float]:
        return list(self._attempts)

    def __len__(self) -> int:
        return len(self._attempts)

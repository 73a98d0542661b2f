"""
内存限流器

固定窗口计数：key → [count, reset_at]。
- 每个 key 在首次请求时开启一个窗口，窗口到期后重新计数
- 过期窗口按 sweep_interval 周期性清理，避免字典无限增长
- 仅在单进程内生效，多进程/多实例部署时各自计数

使用示例：
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=120)
    if not limiter.allow("api_key_id"):
        retry = limiter.retry_after("api_key_id")
"""

import logging
import math
import threading
import time
from functools import lru_cache

from radar.config import get_settings

logger = logging.getLogger(__name__)


class MemoryRateLimiter:
    """内存固定窗口限流器"""

    def __init__(
        self,
        window_seconds: int,
        max_requests: int,
        sweep_interval: int = 300,
        clock=time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.default_limit = max_requests
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._windows: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + sweep_interval

    def allow(self, key: str, limit_override: int | None = None) -> bool:
        """检查请求是否允许通过，允许时计数 +1"""
        limit = limit_override or self.default_limit
        now = self._clock()

        with self._lock:
            if now >= self._next_sweep:
                self._sweep_locked(now)

            window = self._windows.get(key)
            if window is None or now >= window[1]:
                self._windows[key] = [1, now + self.window_seconds]
                return True

            if window[0] >= limit:
                return False

            window[0] += 1
            return True

    def remaining(self, key: str, limit_override: int | None = None) -> int:
        limit = limit_override or self.default_limit
        window = self._windows.get(key)
        if window is None or self._clock() >= window[1]:
            return limit
        return max(0, limit - int(window[0]))

    def retry_after(self, key: str) -> int:
        """距离窗口重置的秒数（向上取整），无窗口时为 0"""
        window = self._windows.get(key)
        if window is None:
            return 0
        return max(0, math.ceil(window[1] - self._clock()))

    def sweep(self) -> int:
        """立即清理过期窗口，返回清理数量"""
        with self._lock:
            return self._sweep_locked(self._clock())

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, window in self._windows.items() if now >= window[1]]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval
        if expired:
            logger.debug(f"限流器清理过期窗口 {len(expired)} 个")
        return len(expired)


@lru_cache(maxsize=1)
def get_rate_limiter() -> MemoryRateLimiter:
    """API Key 限流器（单例）"""
    settings = get_settings()
    return MemoryRateLimiter(
        window_seconds=settings.api_rate_limit_window_seconds,
        max_requests=settings.api_rate_limit_per_minute,
        sweep_interval=settings.rate_limit_sweep_seconds,
    )


@lru_cache(maxsize=1)
def get_oracle_rate_limiter() -> MemoryRateLimiter:
    """神谕接口限流器（单例，按用户计数，比全局限流更严格）"""
    settings = get_settings()
    return MemoryRateLimiter(
        window_seconds=60,
        max_requests=settings.oracle_rate_limit_per_minute,
        sweep_interval=settings.rate_limit_sweep_seconds,
    )

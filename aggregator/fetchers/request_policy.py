"""
request_policy.py - 限流 + 重试策略
每个数据源持有一个 RequestPolicy 实例（由编排器构建），计数器只存在于进程内存中

  - RateLimiter  : 滚动窗口计数（每分钟 / 每小时）+ 最小请求间隔
  - RetryPolicy  : 最大重试次数与退避时间（指数 / 固定）
  - RequestPolicy: 组合两者，包装一次 fetch 操作
"""
import logging
import time
from collections import deque
from typing import Callable, Optional, TypeVar

from aggregator.errors import CrawlerError, FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINUTE = 60.0
HOUR = 3600.0


class RateLimiter:
    """滚动窗口限流器（单进程、非线程安全）"""

    def __init__(
        self,
        requests_per_minute: Optional[int] = None,
        requests_per_hour: Optional[int] = None,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "",
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.min_interval = max(0.0, float(min_interval))
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._history: deque = deque()   # 最近一小时内的请求时间戳
        self._last: Optional[float] = None
        self.request_count = 0

    def _prune(self, now: float) -> None:
        while self._history and self._history[0] <= now - HOUR:
            self._history.popleft()

    def _in_window(self, now: float, window: float) -> list:
        return [t for t in self._history if t > now - window]

    def wait_time(self) -> float:
        """距离下一次允许请求还需等待的秒数"""
        now = self._clock()
        self._prune(now)
        waits = [0.0]
        for limit, window in ((self.requests_per_minute, MINUTE), (self.requests_per_hour, HOUR)):
            if not limit:
                continue
            recent = self._in_window(now, window)
            if len(recent) >= limit:
                # 窗口内第 (len - limit + 1) 早的请求滑出窗口后才放行
                waits.append(recent[len(recent) - limit] + window - now)
        if self.min_interval and self._last is not None:
            waits.append(self._last + self.min_interval - now)
        return max(waits)

    def acquire(self) -> float:
        """阻塞直到窗口允许，记录本次请求；返回实际等待秒数"""
        waited = 0.0
        wait = self.wait_time()
        while wait > 0:
            if wait >= 1:
                logger.info(f"[{self.name}] 达到限流阈值，等待 {wait:.1f}s")
            self._sleep(wait)
            waited += wait
            wait = self.wait_time()
        now = self._clock()
        self._history.append(now)
        self._last = now
        self.request_count += 1
        return waited

    def remaining(self) -> dict:
        """当前窗口剩余额度，未设置阈值时为 None"""
        now = self._clock()
        self._prune(now)
        out = {}
        for key, limit, window in (
            ("per_minute", self.requests_per_minute, MINUTE),
            ("per_hour", self.requests_per_hour, HOUR),
        ):
            out[key] = None if not limit else max(0, limit - len(self._in_window(now, window)))
        return out


class RetryPolicy:
    """重试次数与退避策略"""

    def __init__(
        self,
        max_retries: int = 3,
        delay: float = 1.0,
        backoff: str = "exponential",
        max_delay: float = 60.0,
    ):
        self.max_retries = max_retries
        self.delay = delay
        self.backoff = backoff
        self.max_delay = max_delay

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次失败后的等待时间"""
        if self.backoff == "fixed":
            return self.delay
        return min(self.max_delay, self.delay * (2 ** (attempt - 1)))

    def should_retry(self, error: CrawlerError, attempt: int) -> bool:
        if attempt > self.max_retries:
            return False
        return bool(getattr(error, "retryable", False))


class RequestPolicy:
    """限流 + 重试包装器"""

    def __init__(
        self,
        limiter: RateLimiter,
        retry: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "",
    ):
        self.limiter = limiter
        self.retry = retry
        self.name = name
        self._sleep = sleep
        self.attempts = 0          # 最近一次 execute() 的尝试次数
        self.total_attempts = 0

    @classmethod
    def from_config(
        cls,
        config,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "RequestPolicy":
        name = config.source_type.value
        limiter = RateLimiter(
            requests_per_minute=config.requests_per_minute,
            requests_per_hour=config.requests_per_hour,
            min_interval=config.delay,
            clock=clock,
            sleep=sleep,
            name=name,
        )
        retry = RetryPolicy(
            max_retries=config.max_retries,
            delay=config.delay,
            backoff=config.backoff,
        )
        return cls(limiter, retry, sleep=sleep, name=name)

    def execute(self, operation: Callable[[], T], params: Optional[dict] = None) -> T:
        """
        执行 operation，FetchError 按策略重试
        重试耗尽后抛出最后一次的 FetchError，附带请求参数
        """
        params = params or {}
        self.attempts = 0
        while True:
            self.attempts += 1
            self.total_attempts += 1
            self.limiter.acquire()
            try:
                return operation()
            except FetchError as e:
                e.params = {**params, **e.params}
                e.source_type = e.source_type or self.name
                e.attempts = self.attempts
                if not self.retry.should_retry(e, self.attempts):
                    if self.attempts > 1:
                        logger.error(f"[{self.name}] 重试 {self.attempts - 1} 次后仍失败: {e}")
                    raise
                delay = self.retry.delay_for(self.attempts)
                logger.warning(
                    f"[{self.name}] 第 {self.attempts} 次请求失败: {e}，"
                    f"{delay:.1f}s 后重试（{self.attempts}/{self.retry.max_retries}）"
                )
                self._sleep(delay)

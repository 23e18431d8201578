"""Per-user fixed-window rate limiting for generation requests.

This is advisory throughput control against accidental overuse, not a
security boundary. :class:`RateLimiter` keeps its table in process memory and
is only correct for a single process; deployments running several workers
should use :class:`RedisRateLimiter`, which keeps the counter in Redis.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import redis

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 10


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""
    allowed: bool
    remaining_quota: int
    reset_epoch_millis: int

    def retry_after_seconds(self, now_millis: int | None = None) -> int:
        """Whole seconds until the window resets (at least 1 when rejected)."""
        now = _now_millis() if now_millis is None else now_millis
        remaining_ms = max(0, self.reset_epoch_millis - now)
        return max(1, -(-remaining_ms // 1000))


@dataclass
class _Window:
    count: int
    reset_at: int


class RateLimiter:
    """Process-local fixed-window counter keyed by user id.

    Construct one instance at start-up and share it; it is not safe across
    multiple process instances.
    """

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], int] = _now_millis,
    ):
        self.window_ms = window_seconds * 1000
        self.max_requests = max_requests
        self.clock = clock
        self._windows: dict[str, _Window] = {}

    def check_and_admit(self, user_id: str) -> RateLimitDecision:
        """Count one call for ``user_id`` and decide whether to admit it."""
        now = self.clock()
        window = self._windows.get(user_id)

        if window is None or now >= window.reset_at:
            reset_at = now + self.window_ms
            self._windows[user_id] = _Window(count=1, reset_at=reset_at)
            return RateLimitDecision(
                allowed=True,
                remaining_quota=self.max_requests - 1,
                reset_epoch_millis=reset_at,
            )

        if window.count >= self.max_requests:
            return RateLimitDecision(allowed=False, remaining_quota=0, reset_epoch_millis=window.reset_at)

        window.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining_quota=self.max_requests - window.count,
            reset_epoch_millis=window.reset_at,
        )

    def sweep(self) -> int:
        """Evict expired windows. Returns the number evicted."""
        now = self.clock()
        expired = [user_id for user_id, window in self._windows.items() if now >= window.reset_at]
        for user_id in expired:
            del self._windows[user_id]
        return len(expired)

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        """Sweep forever; run as a background task for the process lifetime."""
        interval = interval_seconds if interval_seconds is not None else self.window_ms / 1000
        while True:
            await asyncio.sleep(interval)
            evicted = self.sweep()
            if evicted:
                logger.debug(f"Rate limiter evicted {evicted} expired window(s)")

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimiter:
    """Fixed-window counter shared across processes through Redis."""

    def __init__(
        self,
        client: "redis.Redis",
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], int] = _now_millis,
    ):
        self.redis = client
        self.window_ms = window_seconds * 1000
        self.max_requests = max_requests
        self.clock = clock

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimiter":
        return cls(redis.from_url(url), **kwargs)

    def _key(self, user_id: str) -> str:
        """Generate Redis key for a user's window."""
        return f"generation_rate:{user_id}"

    def check_and_admit(self, user_id: str) -> RateLimitDecision:
        key = self._key(user_id)
        now = self.clock()
        count = self.redis.incr(key)
        if count == 1:
            self.redis.pexpire(key, self.window_ms)
            ttl_ms = self.window_ms
        else:
            ttl_ms = self.redis.pttl(key)
            if ttl_ms is None or ttl_ms < 0:
                # Counter lost its expiry; start a fresh window
                self.redis.pexpire(key, self.window_ms)
                ttl_ms = self.window_ms
        reset_at = now + ttl_ms

        if count > self.max_requests:
            return RateLimitDecision(allowed=False, remaining_quota=0, reset_epoch_millis=reset_at)
        return RateLimitDecision(
            allowed=True,
            remaining_quota=self.max_requests - count,
            reset_epoch_millis=reset_at,
        )

    def sweep(self) -> int:
        # Redis expires keys on its own
        return 0

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        return None

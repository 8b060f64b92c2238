"""Token-bucket rate limiting of connections and requests."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from typing import Any

__all__ = ["ReqReachLimitError", "TokenBucket", "RateLimitingPlugin", "ReqRateLimitingPlugin"]


class ReqReachLimitError(Exception):
    """Raised when a request exceeds the allowed rate."""

    def __init__(self, message: str = "req reached rate limit") -> None:
        super().__init__(message)


class TokenBucket:
    """A bucket that starts full and gains one token every ``fill_interval`` seconds."""

    def __init__(
        self,
        fill_interval: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if fill_interval <= 0:
            raise ValueError("token bucket fill interval is not > 0")
        if capacity <= 0:
            raise ValueError("token bucket capacity is not > 0")
        self.fill_interval = fill_interval
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._start = clock()
        self._latest_tick = 0
        self._available = capacity
        self._lock = threading.Lock()

    def _current_tick(self, now: float) -> int:
        return int((now - self._start) / self.fill_interval)

    def _adjust(self, tick: int) -> None:
        if self._available >= self.capacity:
            self._latest_tick = tick
            return
        self._available = min(self.capacity, self._available + tick - self._latest_tick)
        self._latest_tick = tick

    def take_available(self, count: int) -> int:
        """Take up to ``count`` tokens without waiting; return how many were taken."""
        if count <= 0:
            return 0
        with self._lock:
            self._adjust(self._current_tick(self._clock()))
            if self._available <= 0:
                return 0
            taken = min(count, self._available)
            self._available -= taken
            return taken

    def wait(self, count: int) -> None:
        """Take ``count`` tokens, sleeping until they would be available."""
        if count <= 0:
            return
        with self._lock:
            now = self._clock()
            tick = self._current_tick(now)
            self._adjust(tick)
            self._available -= count
            if self._available >= 0:
                return
            end_tick = tick + math.ceil(-self._available)
            delay = self._start + end_tick * self.fill_interval - now
        if delay > 0:
            self._sleep(delay)


class RateLimitingPlugin:
    """Limits how fast new connections are accepted."""

    def __init__(self, fill_interval: float, capacity: int, **bucket_options: Any) -> None:
        self.fill_interval = fill_interval
        self.capacity = capacity
        self.bucket = TokenBucket(fill_interval, capacity, **bucket_options)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        return conn, self.bucket.take_available(1) > 0


class ReqRateLimitingPlugin:
    """Limits how fast requests are processed, by waiting or by refusing them."""

    def __init__(
        self, fill_interval: float, capacity: int, block: bool = False, **bucket_options: Any
    ) -> None:
        self.fill_interval = fill_interval
        self.capacity = capacity
        self.block = block
        self.bucket = TokenBucket(fill_interval, capacity, **bucket_options)

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        """Wait for a token, or raise ReqReachLimitError if none is left and not blocking."""
        if self.block:
            self.bucket.wait(1)
            return
        if self.bucket.take_available(1) != 1:
            raise ReqReachLimitError()
"""
Token-bucket rate limiting for outbound registry traffic.

The limiter holds a fixed pool of permits, pre-filled to capacity. A daemon
refill thread ticks once per ``1 / requests_per_second`` seconds and puts at
most one permit back per tick. A spent permit only becomes refillable one
second after it was granted, so no more than ``requests_per_second`` permits
are ever granted inside a one-second window while the initial burst is still
available immediately.

This differs from a plain token bucket, which returns a permit on every tick
while the pool is not full. With that refill, a caller draining the pool could
get ``requests_per_second + 1`` permits inside one second (the full burst plus
the first refill). Here, ``n + 1`` waits at ``n`` requests per second always
span at least one second.

Usage:
    limiter = RateLimiter(5)
    try:
        limiter.wait()
        session.get(url)
    finally:
        limiter.close()
"""

import logging
import threading
import time
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_SECOND = 10
WINDOW_SECONDS = 1.0


class RateLimiter:
    """Blocking token bucket with a background refill thread."""

    def __init__(self, requests_per_second: int = DEFAULT_REQUESTS_PER_SECOND):
        """
        Initialize rate limiter and start the refill thread.

        Args:
            requests_per_second: Bucket capacity and refill rate. Values <= 0
                fall back to the default of 10.
        """
        if requests_per_second <= 0:
            requests_per_second = DEFAULT_REQUESTS_PER_SECOND

        self._capacity = int(requests_per_second)
        self._interval = 1.0 / self._capacity
        self._permits = self._capacity
        self._granted: deque = deque()
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._closed = False

        self._thread = threading.Thread(
            target=self._refill_loop, name="criage-rate-limiter", daemon=True
        )
        self._thread.start()
        logger.debug(f"Rate limiter started at {self._capacity} requests/second")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def available(self) -> int:
        """Number of permits currently in the pool."""
        with self._cond:
            return self._permits

    @property
    def closed(self) -> bool:
        return self._closed

    def _refill_loop(self):
        while not self._stop.wait(self._interval):
            self._tick()

    def _tick(self):
        with self._cond:
            if self._permits >= self._capacity:
                # Pool already full, the permit is dropped
                return
            if not self._granted:
                return
            if time.monotonic() - self._granted[0] < WINDOW_SECONDS:
                return
            self._granted.popleft()
            self._permits += 1
            self._cond.notify()

    def wait(self) -> None:
        """
        Block until a permit is available, then consume it.

        Never raises and has no timeout. Once the limiter is closed, pending
        and future calls return immediately.
        """
        with self._cond:
            while self._permits == 0 and not self._closed:
                self._cond.wait()
            if self._closed:
                return
            self._permits -= 1
            self._granted.append(time.monotonic())

    def close(self) -> None:
        """Stop the refill thread and release any waiters. Idempotent."""
        self._stop.set()
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=self._interval + 1)
        logger.debug("Rate limiter closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = ["RateLimiter", "DEFAULT_REQUESTS_PER_SECOND"]

"""
Rate limiting for provider API calls.

Keeps a single client within its per-minute quota. Retries are left to the
caller of a sync run.
"""

import threading
import time
from collections import deque
from typing import Deque, Optional

from leadsync.logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter shared by the threads of one client.

    At most calls_per_minute calls are admitted in any 60 second window,
    and consecutive calls are spaced by at least min_interval seconds.
    """

    WINDOW_SECONDS = 60.0

    def __init__(self, calls_per_minute: int = 60, min_interval: Optional[float] = None):
        """
        Args:
            calls_per_minute: Maximum calls admitted per window
            min_interval: Minimum spacing between calls (defaults to none)
        """
        if calls_per_minute < 1:
            raise ValueError("calls_per_minute must be at least 1")
        self.calls_per_minute = calls_per_minute
        self.min_interval = min_interval or 0.0

        self._lock = threading.Lock()
        self._calls: Deque[float] = deque()
        self._last_call: Optional[float] = None

    def _wait_time(self, now: float) -> float:
        while self._calls and self._calls[0] <= now - self.WINDOW_SECONDS:
            self._calls.popleft()

        wait = 0.0
        if len(self._calls) >= self.calls_per_minute:
            wait = self._calls[0] + self.WINDOW_SECONDS - now
        if self._last_call is not None and self.min_interval:
            wait = max(wait, self._last_call + self.min_interval - now)
        return max(0.0, wait)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a call may proceed.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if admitted, False if the timeout would be exceeded
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._lock:
                now = time.monotonic()
                wait = self._wait_time(now)
                if wait == 0:
                    self._calls.append(now)
                    self._last_call = now
                    return True

            if deadline is not None and now + wait > deadline:
                return False

            logger.debug(f"Rate limit reached, waiting {wait:.2f}s")
            time.sleep(min(wait, 0.5))

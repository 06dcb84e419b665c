"""Sliding-window admission control for registry requests"""

import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admit at most max_requests calls in any window of `window` seconds"""

    def __init__(self, max_requests: int, window: float, buffer: float = 0.1,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window = window
        self.buffer = buffer
        self._clock = clock
        self._sleep = sleep
        self._requests = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float):
        while self._requests and now - self._requests[0] >= self.window:
            self._requests.popleft()

    def _try_admit(self) -> float:
        """Record an admission and return 0, or return how long to wait"""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._requests) >= self.max_requests:
                return self.window - (now - self._requests[0]) + self.buffer
            self._requests.append(now)
            return 0.0

    def wait_for_slot(self):
        """Block until a request may be made, then record it"""
        while True:
            wait_time = self._try_admit()
            if wait_time <= 0:
                return
            logger.debug(f"Rate limiting: sleeping for {wait_time:.2f} seconds")
            self._sleep(wait_time)

    @property
    def in_window(self) -> int:
        """Admissions recorded in the current window"""
        with self._lock:
            self._prune(self._clock())
            return len(self._requests)

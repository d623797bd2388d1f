# cybersuite/utils/rate_limit.py
"""
In-memory sliding-window rate limiter, keyed by client address.

Per-process only: with several workers each keeps its own window.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict


class SlidingWindowLimiter:
    def __init__(self, max_requests: int = 100, window_seconds: float = 900.0, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Record one request for key; False when the window is already full."""
        now = self._clock()
        with self._lock:
            q = self._requests[key]
            while q and (now - q[0]) >= self.window_seconds:
                q.popleft()
            if len(q) >= self.max_requests:
                return False
            q.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()

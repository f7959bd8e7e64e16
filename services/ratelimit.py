"""Sliding-window request limiter keyed by caller identity."""
from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check_allow(self, identifier: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            window = self._store[identifier]
            while window and now - window[0] >= window_seconds:
                window.popleft()
            if len(window) >= limit:
                return False
            window.append(now)
            return True

    def retry_after(self, identifier: str, window_seconds: int) -> int:
        """Seconds until the oldest request in the window expires."""
        with self._lock:
            window = self._store.get(identifier)
            if not window:
                return 0
            remaining = window_seconds - (self._clock() - window[0])
        return max(1, int(remaining + 0.999))

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

"""Sliding-window request limiter shared by the HTTP feeds."""
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict


@dataclass
class RateLimiter:
    """Allow at most ``limit`` calls per ``window_seconds`` for each key.

    The limiter is constructed once per process and passed to the components
    that need it.  ``clock`` returns monotonic seconds and is injectable for
    tests.
    """

    limit: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic
    _calls: Dict[str, Deque[float]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    def _prune(self, calls: Deque[float], now: float) -> None:
        while calls and now - calls[0] >= self.window_seconds:
            calls.popleft()

    def allow(self, key: str = "default") -> bool:
        """Record a call for ``key`` and return ``False`` when over the limit."""

        with self._lock:
            now = self.clock()
            calls = self._calls.setdefault(key, deque())
            self._prune(calls, now)
            if len(calls) >= self.limit:
                return False
            calls.append(now)
            return True

    def remaining(self, key: str = "default") -> int:
        with self._lock:
            calls = self._calls.get(key)
            if not calls:
                return self.limit
            self._prune(calls, self.clock())
            return max(0, self.limit - len(calls))


__all__ = ["RateLimiter"]

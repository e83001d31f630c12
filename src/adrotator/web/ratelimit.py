"""
Lightweight in-memory rate limiting for the AdSource API.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class SlidingWindowLimiter:
    """
    Simple sliding-window rate limit stored in memory, keyed by client.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")
        self.limit = limit
        self.window_seconds = window_seconds
        self._time = time_fn
        self._lock = threading.Lock()
        self._state: dict[str, list[float]] = {}

    def allow(self, key: str) -> bool:
        allowed, _ = self.allow_with_remaining(key)
        return allowed

    def allow_with_remaining(self, key: str) -> tuple[bool, int]:
        """
        Sliding-window check with remaining-count feedback.
        Returns (allowed, remaining_after).
        """
        now = self._time()
        window_start = now - self.window_seconds
        with self._lock:
            history = [t for t in self._state.get(key, []) if t > window_start]
            if len(history) >= self.limit:
                self._state[key] = history
                return False, 0
            history.append(now)
            self._state[key] = history
            return True, max(0, self.limit - len(history))

    def reset(self) -> None:
        with self._lock:
            self._state.clear()

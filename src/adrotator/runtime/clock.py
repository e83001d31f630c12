"""Clock helpers used by the rotation runtime.

:class:`SteppedMasterClock` feeds the deterministic timer service so timer
cadence can be asserted without sleeping. :func:`epoch_ms` stamps analytics
events.
"""

from __future__ import annotations

import time
from threading import Lock


class SteppedMasterClock:
    """Deterministic clock used for tests.

    Time advances only when :meth:`advance` (or :meth:`set`) is called.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self._lock = Lock()

    def now(self) -> float:
        with self._lock:
            return self._current

    def advance(self, seconds: float) -> float:
        """Advance the clock by ``seconds`` (must be non-negative)."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        with self._lock:
            self._current += seconds
            return self._current

    def set(self, value: float) -> float:
        """Move the clock forward to ``value``; never backwards."""
        with self._lock:
            if value < self._current:
                raise ValueError("clock cannot move backwards")
            self._current = value
            return self._current


def epoch_ms() -> int:
    """Wall-clock timestamp in epoch milliseconds, used for analytics events."""
    return int(time.time() * 1000)

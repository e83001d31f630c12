"""Cancellable one-shot timers.

Every slot scheduler arms its next tick through a :class:`TimerService`. A
:class:`TimerHandle` fires at most once and can be invalidated at any point
before it fires; cancelling a fired or already-cancelled handle is a no-op.

Two implementations are provided:

- :class:`ThreadingTimerService` runs callbacks on daemon ``threading.Timer``
  threads (real-time mode).
- :class:`SteppedTimerService` never runs anything on its own; tests advance
  its :class:`~adrotator.runtime.clock.SteppedMasterClock` through
  :meth:`SteppedTimerService.advance`, which fires due callbacks synchronously
  and in due-time order.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Callable, Protocol, runtime_checkable

from .clock import SteppedMasterClock

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], None]


class TimerHandle:
    """Handle for one armed callback."""

    def __init__(self, due: float, callback: TimerCallback, *, label: str = "") -> None:
        self.due = due
        self.label = label
        self._callback = callback
        self._lock = threading.Lock()
        self._cancelled = False
        self._fired = False
        self._on_cancel: Callable[[], None] | None = None

    @property
    def active(self) -> bool:
        """True until the handle fires or is cancelled."""
        with self._lock:
            return not (self._cancelled or self._fired)

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> bool:
        """Invalidate the handle. Returns True if it was still pending."""
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._cancelled = True
            hook = self._on_cancel
        if hook is not None:
            hook()
        return True

    def fire(self) -> bool:
        """Run the callback unless the handle was cancelled or already fired."""
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._fired = True
        # Run outside the lock: callbacks routinely re-arm (and so cancel) timers.
        self._callback()
        return True

    def __repr__(self) -> str:
        return f"TimerHandle(label={self.label!r}, due={self.due:.3f}, active={self.active})"


@runtime_checkable
class TimerService(Protocol):
    """Schedules one-shot callbacks."""

    def call_later(self, delay: float, callback: TimerCallback, *, label: str = "") -> TimerHandle:
        """Arm ``callback`` to run after ``delay`` seconds."""

    def shutdown(self) -> None:
        """Cancel every pending handle."""


class ThreadingTimerService:
    """Real-time timers backed by ``threading.Timer`` daemon threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[TimerHandle] = set()

    def call_later(self, delay: float, callback: TimerCallback, *, label: str = "") -> TimerHandle:
        delay = max(0.0, delay)
        handle = TimerHandle(delay, callback, label=label)

        def _run() -> None:
            with self._lock:
                self._pending.discard(handle)
            try:
                handle.fire()
            except Exception:
                logger.exception("Timer[%s]: callback raised", label)

        timer = threading.Timer(delay, _run)
        timer.daemon = True
        timer.name = f"adrotator-timer-{label}" if label else "adrotator-timer"

        def _on_cancel() -> None:
            timer.cancel()
            with self._lock:
                self._pending.discard(handle)

        handle._on_cancel = _on_cancel
        with self._lock:
            self._pending.add(handle)
        timer.start()
        return handle

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._pending)
        for handle in handles:
            handle.cancel()


class SteppedTimerService:
    """Deterministic timer service for tests and simulations."""

    def __init__(self, clock: SteppedMasterClock | None = None) -> None:
        self.clock = clock or SteppedMasterClock()
        self._lock = threading.Lock()
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: TimerCallback, *, label: str = "") -> TimerHandle:
        due = self.clock.now() + max(0.0, delay)
        handle = TimerHandle(due, callback, label=label)
        with self._lock:
            heapq.heappush(self._heap, (due, next(self._seq), handle))
        return handle

    def pending(self) -> list[TimerHandle]:
        """Active handles ordered by due time."""
        with self._lock:
            entries = sorted(self._heap)
        return [handle for _, _, handle in entries if handle.active]

    def next_due(self) -> float | None:
        pending = self.pending()
        return pending[0].due if pending else None

    def advance(self, seconds: float) -> int:
        """Advance the clock by ``seconds``, firing every timer that falls due.

        Timers armed by callbacks during the advance are fired too if they
        fall due within the window. Returns the number of callbacks run.
        """
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        target = self.clock.now() + seconds
        fired = 0
        while True:
            handle = self._pop_due(target)
            if handle is None:
                break
            if handle.due > self.clock.now():
                self.clock.set(handle.due)
            if handle.fire():
                fired += 1
        self.clock.set(max(target, self.clock.now()))
        return fired

    def run_due(self) -> int:
        """Fire timers due at the current time without advancing the clock."""
        return self.advance(0.0)

    def shutdown(self) -> None:
        with self._lock:
            handles = [handle for _, _, handle in self._heap]
            self._heap.clear()
        for handle in handles:
            handle.cancel()

    def _pop_due(self, target: float) -> TimerHandle | None:
        with self._lock:
            while self._heap:
                due, _, handle = self._heap[0]
                if not handle.active:
                    heapq.heappop(self._heap)
                    continue
                if due > target:
                    return None
                heapq.heappop(self._heap)
                return handle
        return None

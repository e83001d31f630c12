"""Viewport and page visibility handling.

A :class:`VisibilityProbe` reports, per slot, the fraction of the slot that
is visible, and whether the hosting page as a whole is hidden. The
:class:`VisibilityGovernor` turns those reports into play/pause/mute actions
on mounted video:

- below ``threshold``: pause, force mute and reset the sound toggle,
  regardless of what the user chose;
- at or above ``threshold``: resume only if the governor itself paused the
  video. Mute is left alone.

Page visibility does not drive play/pause; the slot scheduler reads
:meth:`VisibilityGovernor.page_hidden` to decide whether to skip a fetch.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from .media import VideoElement

if TYPE_CHECKING:
    from .slot import SlotState

logger = logging.getLogger(__name__)

RatioCallback = Callable[[float], None]


@runtime_checkable
class VisibilityProbe(Protocol):
    """Source of slot intersection ratios and page visibility."""

    def observe(self, slot_id: str, callback: RatioCallback) -> None:
        """Deliver every intersection-ratio change of ``slot_id`` to ``callback``."""

    def unobserve(self, slot_id: str) -> None:
        """Stop delivering ratios for ``slot_id``."""

    def disconnect(self) -> None:
        """Stop observing every slot."""

    def current_ratio(self, slot_id: str) -> float | None:
        """Last known ratio for ``slot_id``, or None if unknown."""

    def page_hidden(self) -> bool:
        """True while the hosting page is not visible."""


class ManualVisibilityProbe:
    """Probe whose state is pushed by the host (or by tests).

    Slots without a reported ratio are treated as having ``default_ratio``.
    """

    def __init__(self, *, default_ratio: float | None = 1.0, page_hidden: bool = False) -> None:
        self._default_ratio = default_ratio
        self._page_hidden = page_hidden
        self._ratios: dict[str, float] = {}
        self._callbacks: dict[str, RatioCallback] = {}
        self._lock = threading.Lock()

    def observe(self, slot_id: str, callback: RatioCallback) -> None:
        with self._lock:
            self._callbacks[slot_id] = callback

    def unobserve(self, slot_id: str) -> None:
        with self._lock:
            self._callbacks.pop(slot_id, None)

    def disconnect(self) -> None:
        with self._lock:
            self._callbacks.clear()

    def is_observed(self, slot_id: str) -> bool:
        with self._lock:
            return slot_id in self._callbacks

    def current_ratio(self, slot_id: str) -> float | None:
        with self._lock:
            return self._ratios.get(slot_id, self._default_ratio)

    def page_hidden(self) -> bool:
        with self._lock:
            return self._page_hidden

    def set_page_hidden(self, hidden: bool) -> None:
        with self._lock:
            self._page_hidden = hidden

    def set_ratio(self, slot_id: str, ratio: float) -> None:
        """Record a new intersection ratio and notify the observer, if any."""
        if not 0.0 <= ratio <= 1.0:
            raise ValueError("ratio must be within [0, 1]")
        with self._lock:
            self._ratios[slot_id] = ratio
            callback = self._callbacks.get(slot_id)
        if callback is not None:
            callback(ratio)


class VisibilityGovernor:
    """Applies visibility rules to the video mounted in each slot."""

    def __init__(self, probe: VisibilityProbe, *, threshold: float = 0.5) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        self._probe = probe
        self._threshold = threshold
        self._attached: set[str] = set()
        self._lock = threading.Lock()

    @property
    def threshold(self) -> float:
        return self._threshold

    def page_hidden(self) -> bool:
        return self._probe.page_hidden()

    def is_visible(self, slot_id: str) -> bool:
        ratio = self._probe.current_ratio(slot_id)
        return ratio is not None and ratio >= self._threshold

    def attach(self, slot: SlotState) -> None:
        with self._lock:
            if slot.slot_id in self._attached:
                return
            self._attached.add(slot.slot_id)
        self._probe.observe(slot.slot_id, lambda ratio: self.on_ratio(slot, ratio))

    def detach(self, slot: SlotState) -> None:
        with self._lock:
            if slot.slot_id not in self._attached:
                return
            self._attached.discard(slot.slot_id)
        self._probe.unobserve(slot.slot_id)

    def disconnect(self) -> None:
        with self._lock:
            self._attached.clear()
        self._probe.disconnect()

    def on_ratio(self, slot: SlotState, ratio: float) -> None:
        with slot.lock:
            if slot.stopped:
                return
            element = slot.element
            if not isinstance(element, VideoElement):
                return

            if ratio >= self._threshold:
                if element.paused and element.paused_by_visibility:
                    element.play()
                    logger.debug("VisibilityGovernor[%s]: resumed video (ratio=%.2f)", slot.slot_id, ratio)
                    slot.sink.update(element)
                return

            if not element.paused:
                element.pause()
                element.paused_by_visibility = True
            element.force_mute()
            logger.debug("VisibilityGovernor[%s]: paused and muted video (ratio=%.2f)", slot.slot_id, ratio)
            slot.sink.update(element)

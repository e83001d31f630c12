"""Per-slot mutable state, owned by exactly one SlotScheduler."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from adrotator.domain.descriptor import AdDescriptor

from .config import RotatorConfig
from .media import MediaElement, MediaSlotSink, ProgressIndicator
from .timers import TimerHandle


class SlotPhase(str, Enum):
    """States of the slot scheduler state machine."""

    IDLE = "idle"
    STAGGERED_START = "staggered_start"
    ACTIVE_WAIT = "active_wait"
    FETCHING = "fetching"
    APPLYING = "applying"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


@dataclass(eq=False)
class SlotState:
    """State of one display slot.

    ``lock`` guards every field below and is held while media is applied;
    ``tick_lock`` serialises whole ticks (including the network fetch) so a
    visibility callback never waits on the network.
    """

    slot_id: str
    sink: MediaSlotSink
    index: int = 0
    phase: SlotPhase = SlotPhase.IDLE
    current_ad_id: str | None = None
    current_ad: AdDescriptor | None = None
    element: MediaElement | None = None
    progress: ProgressIndicator | None = None
    timer: TimerHandle | None = None
    generation: int = 0
    next_delay_ms: int | None = None
    consecutive_failures: int = 0
    stopped: bool = False
    impressions: Counter = field(default_factory=Counter)
    clicks: Counter = field(default_factory=Counter)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    tick_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_impression(self, ad_id: str) -> None:
        with self.lock:
            self.impressions[ad_id] += 1

    def record_click(self, ad_id: str) -> None:
        with self.lock:
            self.clicks[ad_id] += 1

    def ctr(self) -> dict[str, dict[str, int]]:
        with self.lock:
            ids = set(self.impressions) | set(self.clicks)
            return {
                ad_id: {"impressions": self.impressions[ad_id], "clicks": self.clicks[ad_id]}
                for ad_id in ids
            }


def display_interval(ad: AdDescriptor, config: RotatorConfig) -> int:
    """Effective display interval (ms) for ``ad``.

    A finite duration on a non-looping ad sets the interval (never below
    ``min_display_interval``); anything else uses ``default_interval``.
    """
    if ad.has_finite_duration and not ad.loop:
        return max(config.min_display_interval, int(ad.duration_seconds * 1000))
    return config.default_interval

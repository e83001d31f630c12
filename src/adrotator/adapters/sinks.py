"""
Slot sinks for surfaces without a real display.

RecordingSlotSink keeps every call it receives so callers can inspect what a
slot showed; ConsoleSlotSink writes a one-line description of each change to
the log and is used by the ``adrotator rotate`` command.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field

from adrotator.runtime.media import ImageElement, MediaElement, VideoElement

logger = logging.getLogger(__name__)


@dataclass
class SinkEvent:
    """One call received by a RecordingSlotSink."""
    action: str
    element: MediaElement | None = None
    duration_ms: int | None = None


@dataclass
class RecordingSlotSink:
    """In-memory sink that records every mount, update and progress change."""
    slot_id: str
    events: list[SinkEvent] = field(default_factory=list)
    mounted: MediaElement | None = None
    progress_ms: int | None = None
    fail_mounts: int = 0

    def clear(self) -> None:
        self.mounted = None
        self.events.append(SinkEvent("clear"))

    def mount(self, element: MediaElement) -> None:
        if self.fail_mounts > 0:
            self.fail_mounts -= 1
            raise RuntimeError(f"cannot mount {element.src}")
        self.mounted = element
        self.events.append(SinkEvent("mount", element=copy.copy(element)))

    def update(self, element: MediaElement) -> None:
        self.events.append(SinkEvent("update", element=copy.copy(element)))

    def start_progress(self, duration_ms: int) -> None:
        self.progress_ms = duration_ms
        self.events.append(SinkEvent("start_progress", duration_ms=duration_ms))

    def reset_progress(self) -> None:
        self.progress_ms = None
        self.events.append(SinkEvent("reset_progress"))

    @property
    def mounts(self) -> list[MediaElement]:
        return [e.element for e in self.events if e.action == "mount" and e.element is not None]


class ConsoleSlotSink:
    """Sink that logs what the slot would display."""

    def __init__(self, slot_id: str) -> None:
        self.slot_id = slot_id

    def clear(self) -> None:
        logger.debug("[%s] cleared", self.slot_id)

    def mount(self, element: MediaElement) -> None:
        logger.info("[%s] showing %s", self.slot_id, describe(element))

    def update(self, element: MediaElement) -> None:
        logger.info("[%s] now %s", self.slot_id, describe(element))

    def start_progress(self, duration_ms: int) -> None:
        logger.debug("[%s] progress %dms", self.slot_id, duration_ms)

    def reset_progress(self) -> None:
        return None


def describe(element: MediaElement) -> str:
    if isinstance(element, VideoElement):
        toggle = element.sound_toggle
        state = "paused" if element.paused else "playing"
        return f"video {element.ad_id} ({element.src}) {state} {toggle.glyph} {toggle.title}"
    if isinstance(element, ImageElement):
        tag = " [placeholder]" if element.placeholder else ""
        return f"image {element.ad_id} ({element.src}) -> {element.href}{tag}"
    return repr(element)

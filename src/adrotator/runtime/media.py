"""Media models mounted into ad slots and the sink contract that displays them.

The runtime never touches a display surface directly. It builds
:class:`VideoElement` / :class:`ImageElement` models and hands them to a
:class:`MediaSlotSink`, which renders them on whatever surface hosts the slot
and calls back into the rotator for clicks, load errors and end-of-media.

The sound toggle of a video has no state of its own: its glyph, title and
ARIA attributes are derived from the video's ``muted`` flag, so the two can
never diverge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Union, runtime_checkable

SOUND_TOGGLE_LABEL = "Toggle sound for advertisement"
MUTED_GLYPH = "\U0001F507"  # speaker with cancellation stroke
UNMUTED_GLYPH = "\U0001F50A"  # speaker with three sound waves


@dataclass(frozen=True)
class SoundToggleView:
    """Visual and ARIA state of a video's sound toggle."""

    muted: bool
    glyph: str
    title: str
    aria_pressed: bool
    aria_label: str = SOUND_TOGGLE_LABEL

    @classmethod
    def for_muted(cls, muted: bool) -> SoundToggleView:
        return cls(
            muted=muted,
            glyph=MUTED_GLYPH if muted else UNMUTED_GLYPH,
            title="Unmute" if muted else "Mute",
            aria_pressed=not muted,
        )


@dataclass
class VideoElement:
    """A video mounted in a slot. Starts muted and paused."""

    ad_id: str
    src: str
    loop: bool = False
    poster: str | None = None
    muted: bool = True
    paused: bool = True
    paused_by_visibility: bool = False
    ended: bool = False

    @property
    def sound_toggle(self) -> SoundToggleView:
        return SoundToggleView.for_muted(self.muted)

    def play(self) -> None:
        self.paused = False
        self.ended = False
        self.paused_by_visibility = False

    def pause(self) -> None:
        self.paused = True

    def toggle_sound(self) -> bool:
        """Flip mute state; returns the new ``muted`` value."""
        self.muted = not self.muted
        return self.muted

    def force_mute(self) -> None:
        self.muted = True


@dataclass
class ImageElement:
    """A clickable image mounted in a slot."""

    ad_id: str
    src: str
    href: str = "#"
    alt: str = "Advertisement"
    placeholder: bool = False


MediaElement = Union[VideoElement, ImageElement]


@dataclass
class ProgressIndicator:
    """Cosmetic fill bar; carries no scheduling authority."""

    duration_ms: int
    resets: int = field(default=0)


@runtime_checkable
class MediaSlotSink(Protocol):
    """Display surface for one ad slot."""

    slot_id: str

    def clear(self) -> None:
        """Remove whatever the slot currently shows."""

    def mount(self, element: MediaElement) -> None:
        """Display a freshly built element."""

    def update(self, element: MediaElement) -> None:
        """Re-render an element whose state (play, mute, source) changed."""

    def start_progress(self, duration_ms: int) -> None:
        """Start (or restart) the progress indicator."""

    def reset_progress(self) -> None:
        """Return the progress indicator to empty."""

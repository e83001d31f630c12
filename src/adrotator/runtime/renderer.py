"""Mounting ads into slots.

``SlotRenderer.apply`` is the only place that changes what a slot shows. It
is called with the slot lock held by the scheduler.
"""

from __future__ import annotations

import logging
from typing import Callable

from adrotator.domain.descriptor import AdDescriptor
from adrotator.infra.exceptions import RenderError

from .analytics import AnalyticsSink, NullAnalytics
from .config import RotatorConfig
from .history import RecentHistory
from .media import ImageElement, MediaElement, ProgressIndicator, VideoElement
from .slot import SlotState, display_interval
from .visibility import VisibilityGovernor

logger = logging.getLogger(__name__)

# Returns the connection's downlink in Mbps, or None when unknown.
BandwidthProbe = Callable[[], "float | None"]


class SlotRenderer:
    """Builds media elements for descriptors and mounts them into slot sinks."""

    def __init__(
        self,
        config: RotatorConfig,
        history: RecentHistory,
        governor: VisibilityGovernor,
        *,
        analytics: AnalyticsSink | None = None,
        bandwidth_probe: BandwidthProbe | None = None,
    ) -> None:
        self._config = config
        self._history = history
        self._governor = governor
        self._analytics = analytics or NullAnalytics()
        self._bandwidth_probe = bandwidth_probe

    def apply(self, slot: SlotState, ad: AdDescriptor) -> bool:
        """
        Display ``ad`` in ``slot``.

        Returns False without mounting anything when ``ad`` is already
        displayed (the impression counter is still incremented), True when new
        content was mounted.
        """
        with slot.lock:
            if ad.id == slot.current_ad_id:
                slot.record_impression(ad.id)
                return False

            element = self._build(ad, slot)
            try:
                self._mount(slot, element)
            except RenderError as e:
                logger.warning("SlotRenderer[%s]: %s; showing placeholder", slot.slot_id, e)
                element = self._placeholder_for(ad)
                try:
                    self._mount(slot, element)
                except RenderError as e2:
                    logger.warning("SlotRenderer[%s]: placeholder failed too: %s", slot.slot_id, e2)
                    element = None

            slot.element = element
            slot.current_ad_id = ad.id
            slot.current_ad = ad
            self._start_progress(slot, ad)

            slot.record_impression(ad.id)
            self._history.mark_shown(ad.id)
            self._analytics.impression(ad.id)
            logger.debug(
                "SlotRenderer[%s]: mounted %s ad %s",
                slot.slot_id, "video" if isinstance(element, VideoElement) else "image", ad.id,
            )
            return True

    def handle_media_error(self, slot: SlotState) -> None:
        """Swap a media element that failed to load for the placeholder image."""
        with slot.lock:
            element = slot.element
            if element is None or slot.current_ad is None:
                return
            if isinstance(element, ImageElement):
                if element.placeholder:
                    return
                element.src = self._config.placeholder_image
                element.placeholder = True
                logger.warning(
                    "SlotRenderer[%s]: image for ad %s failed to load, showing placeholder",
                    slot.slot_id, element.ad_id,
                )
                slot.sink.update(element)
                return

            logger.warning(
                "SlotRenderer[%s]: video for ad %s failed to load, showing placeholder",
                slot.slot_id, element.ad_id,
            )
            replacement = self._placeholder_for(slot.current_ad)
            try:
                self._mount(slot, replacement)
            except RenderError as e:
                logger.warning("SlotRenderer[%s]: placeholder failed: %s", slot.slot_id, e)
                slot.element = None
                return
            slot.element = replacement

    def toggle_sound(self, slot: SlotState) -> bool | None:
        """Flip the mute state of the slot's video. Returns the new muted flag."""
        with slot.lock:
            element = slot.element
            if not isinstance(element, VideoElement):
                return None
            muted = element.toggle_sound()
            slot.sink.update(element)
            return muted

    def mark_ended(self, slot: SlotState) -> bool:
        """Record that the slot's video reached its end. True for non-looping video."""
        with slot.lock:
            element = slot.element
            if not isinstance(element, VideoElement) or element.loop:
                return False
            element.ended = True
            element.pause()
            return True

    # Internal ----------------------------------------------------------------

    def _build(self, ad: AdDescriptor, slot: SlotState) -> MediaElement:
        if ad.is_video and not (ad.fallback_image_url and self._is_low_bandwidth()):
            video = VideoElement(
                ad_id=ad.id,
                src=ad.media_url,
                loop=ad.loop,
                poster=ad.poster_url,
            )
            if self._governor.is_visible(slot.slot_id):
                video.play()
            else:
                video.paused_by_visibility = True
            return video

        src = ad.fallback_image_url if ad.is_video else ad.media_url
        return ImageElement(
            ad_id=ad.id,
            src=src,
            href=ad.link_url or "#",
            alt=ad.title or "Advertisement",
        )

    def _placeholder_for(self, ad: AdDescriptor) -> ImageElement:
        return ImageElement(
            ad_id=ad.id,
            src=self._config.placeholder_image,
            href=ad.link_url or "#",
            alt=ad.title or "Advertisement",
            placeholder=True,
        )

    def _mount(self, slot: SlotState, element: MediaElement) -> None:
        try:
            slot.sink.clear()
            slot.sink.mount(element)
        except Exception as e:
            raise RenderError(f"Failed to mount ad {element.ad_id}: {e}") from e

    def _start_progress(self, slot: SlotState, ad: AdDescriptor) -> None:
        if not self._config.progress_bar:
            slot.progress = None
            return
        duration_ms = display_interval(ad, self._config)
        if slot.progress is None:
            slot.progress = ProgressIndicator(duration_ms=duration_ms)
        else:
            slot.progress.duration_ms = duration_ms
            slot.progress.resets += 1
        try:
            slot.sink.reset_progress()
            slot.sink.start_progress(duration_ms)
        except Exception as e:
            logger.debug("SlotRenderer[%s]: progress indicator failed: %s", slot.slot_id, e)

    def _is_low_bandwidth(self) -> bool:
        if self._config.allow_video_on_slow_connection or self._bandwidth_probe is None:
            return False
        downlink = self._bandwidth_probe()
        return downlink is not None and downlink < self._config.low_bandwidth_threshold

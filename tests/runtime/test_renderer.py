from __future__ import annotations

from adrotator.adapters.sinks import RecordingSlotSink
from adrotator.domain.descriptor import AdDescriptor
from adrotator.runtime.config import RotatorConfig
from adrotator.runtime.history import RecentHistory
from adrotator.runtime.media import MUTED_GLYPH, UNMUTED_GLYPH, ImageElement, VideoElement
from adrotator.runtime.renderer import SlotRenderer
from adrotator.runtime.slot import SlotState
from adrotator.runtime.visibility import ManualVisibilityProbe, VisibilityGovernor


def _setup(analytics, *, ratio=1.0, config=None, bandwidth=None):
    config = config or RotatorConfig()
    probe = ManualVisibilityProbe(default_ratio=ratio)
    governor = VisibilityGovernor(probe, threshold=config.min_video_play_visibility)
    history = RecentHistory(limit=config.recently_shown_limit)
    renderer = SlotRenderer(
        config,
        history,
        governor,
        analytics=analytics,
        bandwidth_probe=(lambda: bandwidth) if bandwidth is not None else None,
    )
    sink = RecordingSlotSink("ad-banner-1")
    slot = SlotState(slot_id="ad-banner-1", sink=sink)
    governor.attach(slot)
    return renderer, slot, sink, probe, history


def _video(ad_factory, name="clip", **meta) -> AdDescriptor:
    return AdDescriptor.from_dict(ad_factory(name, video=True, **meta))


def _image(ad_factory, name="banner", **meta) -> AdDescriptor:
    return AdDescriptor.from_dict(ad_factory(name, **meta))


def test_image_ad_is_mounted_with_link(ad_factory, analytics):
    renderer, slot, sink, _, history = _setup(analytics)

    assert renderer.apply(slot, _image(ad_factory)) is True

    element = sink.mounted
    assert isinstance(element, ImageElement)
    assert element.src == "/ads/banner.jpg"
    assert element.href == "https://example.com/banner"
    assert element.alt == "banner promo"
    assert [e.action for e in sink.events] == ["clear", "mount", "reset_progress", "start_progress"]
    assert slot.current_ad_id == "banner"
    assert history.snapshot() == ["banner"]
    assert analytics.ids("impression") == ["banner"]


def test_reapplying_current_ad_only_counts_impression(ad_factory, analytics):
    renderer, slot, sink, _, history = _setup(analytics)
    ad = _image(ad_factory)
    renderer.apply(slot, ad)
    events_before = len(sink.events)

    assert renderer.apply(slot, ad) is False

    assert len(sink.events) == events_before
    assert slot.impressions["banner"] == 2
    assert history.snapshot() == ["banner"]
    assert analytics.ids("impression") == ["banner"]


def test_visible_video_autoplays_muted(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics)

    renderer.apply(slot, _video(ad_factory))

    video = sink.mounted
    assert isinstance(video, VideoElement)
    assert video.muted
    assert not video.paused
    assert video.sound_toggle.glyph == MUTED_GLYPH
    assert video.sound_toggle.title == "Unmute"
    assert video.sound_toggle.aria_pressed is False
    assert video.poster is None


def test_hidden_video_waits_for_visibility(ad_factory, analytics):
    renderer, slot, sink, probe, _ = _setup(analytics, ratio=0.0)

    renderer.apply(slot, _video(ad_factory))
    assert sink.mounted.paused
    assert sink.mounted.paused_by_visibility

    probe.set_ratio("ad-banner-1", 0.8)
    assert not slot.element.paused


def test_sound_toggle_stays_in_lockstep(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics)
    renderer.apply(slot, _video(ad_factory))

    assert renderer.toggle_sound(slot) is False
    toggle = slot.element.sound_toggle
    assert (toggle.muted, toggle.glyph, toggle.title, toggle.aria_pressed) == (False, UNMUTED_GLYPH, "Mute", True)
    assert sink.events[-1].action == "update"
    assert sink.events[-1].element.muted is False

    assert renderer.toggle_sound(slot) is True
    assert slot.element.sound_toggle.glyph == MUTED_GLYPH


def test_toggle_sound_ignored_for_images(ad_factory, analytics):
    renderer, slot, _, _, _ = _setup(analytics)
    renderer.apply(slot, _image(ad_factory))
    assert renderer.toggle_sound(slot) is None


def test_leaving_viewport_pauses_and_forces_mute(ad_factory, analytics):
    renderer, slot, _, probe, _ = _setup(analytics)
    renderer.apply(slot, _video(ad_factory))
    renderer.toggle_sound(slot)
    assert slot.element.muted is False

    probe.set_ratio("ad-banner-1", 0.3)

    video = slot.element
    assert video.paused
    assert video.paused_by_visibility
    assert video.muted
    assert video.sound_toggle.glyph == MUTED_GLYPH

    probe.set_ratio("ad-banner-1", 0.5)
    assert not video.paused
    assert video.muted


def test_user_paused_video_is_not_resumed(ad_factory, analytics):
    renderer, slot, _, probe, _ = _setup(analytics)
    renderer.apply(slot, _video(ad_factory))
    slot.element.pause()

    probe.set_ratio("ad-banner-1", 0.1)
    probe.set_ratio("ad-banner-1", 1.0)

    assert slot.element.paused
    assert not slot.element.paused_by_visibility


def test_media_error_on_image_swaps_in_placeholder(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics)
    renderer.apply(slot, _image(ad_factory))

    renderer.handle_media_error(slot)

    assert slot.element.src == "/images/default.jpg"
    assert slot.element.placeholder
    assert slot.element.href == "https://example.com/banner"
    assert sink.events[-1].action == "update"


def test_media_error_on_video_mounts_placeholder_image(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics)
    renderer.apply(slot, _video(ad_factory))

    renderer.handle_media_error(slot)

    assert isinstance(sink.mounted, ImageElement)
    assert sink.mounted.placeholder
    assert slot.current_ad_id == "clip"


def test_slow_connection_prefers_image_fallback(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics, bandwidth=0.2)
    renderer.apply(slot, _video(ad_factory))
    assert isinstance(sink.mounted, ImageElement)
    assert sink.mounted.src == "/ads/clip.jpg"


def test_slow_connection_override_keeps_video(ad_factory, analytics):
    config = RotatorConfig(allow_video_on_slow_connection=True)
    renderer, slot, sink, _, _ = _setup(analytics, bandwidth=0.2, config=config)
    renderer.apply(slot, _video(ad_factory))
    assert isinstance(sink.mounted, VideoElement)


def test_progress_restarts_on_each_new_ad(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics)
    renderer.apply(slot, _image(ad_factory, "one", duration=12))
    renderer.apply(slot, _image(ad_factory, "two"))

    assert slot.progress.duration_ms == 30_000
    assert slot.progress.resets == 1
    assert [e.duration_ms for e in sink.events if e.action == "start_progress"] == [12_000, 30_000]


def test_progress_bar_can_be_disabled(ad_factory, analytics):
    renderer, slot, sink, _, _ = _setup(analytics, config=RotatorConfig(progress_bar=False))
    renderer.apply(slot, _image(ad_factory))
    assert slot.progress is None
    assert not [e for e in sink.events if e.action.endswith("progress")]


def test_ended_marks_non_looping_video_only(ad_factory, analytics):
    renderer, slot, _, _, _ = _setup(analytics)
    renderer.apply(slot, _video(ad_factory, loop=True))
    assert renderer.mark_ended(slot) is False

    renderer.apply(slot, _video(ad_factory, "other"))
    assert renderer.mark_ended(slot) is True
    assert slot.element.ended
    assert slot.element.paused

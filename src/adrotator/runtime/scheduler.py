"""Slot scheduling: the per-slot rotation state machine and the rotator controller.

Each slot runs an independent timer loop::

    IDLE -> STAGGERED_START -> FETCHING -> APPLYING -> SCHEDULED -> ACTIVE_WAIT
                                  ^                                     |
                                  +-------------------------------------+

``STOPPED`` is terminal and reachable from every state.

Key guarantees:

- At most one timer is armed per slot. Arming cancels the previous handle and
  bumps the slot generation so a callback that already started is ignored.
- Within a slot, fetch -> select -> apply -> re-arm is strictly sequential;
  the next tick is armed only after the current apply step completes.
- Fetch failures never escape a tick. After retries are exhausted the slot is
  re-armed with a capped exponential backoff and keeps rotating.
- While the page is hidden a tick skips fetching and re-arms at
  ``hidden_interval``.
- A fetch that completes after :meth:`SlotScheduler.stop` is discarded.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Sequence
from typing import Any, Callable

from adrotator.infra.exceptions import FetchError

from .analytics import AnalyticsSink, HttpAnalytics, NullAnalytics
from .config import RotatorConfig
from .fetcher import AdFetcher
from .history import HistoryStore, InMemoryHistoryStore, RecentHistory
from .media import MediaSlotSink
from .renderer import BandwidthProbe, SlotRenderer
from .selector import AdSelector, RandomFn
from .slot import SlotPhase, SlotState, display_interval
from .timers import ThreadingTimerService, TimerService
from .visibility import ManualVisibilityProbe, VisibilityGovernor, VisibilityProbe

logger = logging.getLogger(__name__)

TransitionListener = Callable[[str, SlotPhase, SlotPhase], None]

_TRANSITIONS: dict[SlotPhase, frozenset[SlotPhase]] = {
    SlotPhase.IDLE: frozenset({SlotPhase.STAGGERED_START, SlotPhase.FETCHING, SlotPhase.SCHEDULED}),
    SlotPhase.STAGGERED_START: frozenset({SlotPhase.FETCHING, SlotPhase.SCHEDULED}),
    SlotPhase.ACTIVE_WAIT: frozenset({SlotPhase.FETCHING, SlotPhase.SCHEDULED}),
    SlotPhase.FETCHING: frozenset({SlotPhase.APPLYING, SlotPhase.SCHEDULED}),
    SlotPhase.APPLYING: frozenset({SlotPhase.SCHEDULED}),
    SlotPhase.SCHEDULED: frozenset({SlotPhase.ACTIVE_WAIT}),
    SlotPhase.STOPPED: frozenset(),
}


class SlotScheduler:
    """Drives one slot through fetch, select, apply and re-arm."""

    def __init__(
        self,
        slot: SlotState,
        *,
        config: RotatorConfig,
        fetcher: AdFetcher,
        selector: AdSelector,
        renderer: SlotRenderer,
        governor: VisibilityGovernor,
        history: RecentHistory,
        timers: TimerService,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._slot = slot
        self._config = config
        self._fetcher = fetcher
        self._selector = selector
        self._renderer = renderer
        self._governor = governor
        self._history = history
        self._timers = timers
        self._on_transition = on_transition

    @property
    def slot(self) -> SlotState:
        return self._slot

    @property
    def slot_id(self) -> str:
        return self._slot.slot_id

    @property
    def phase(self) -> SlotPhase:
        with self._slot.lock:
            return self._slot.phase

    @property
    def stopped(self) -> bool:
        with self._slot.lock:
            return self._slot.stopped

    # Lifecycle ----------------------------------------------------------------

    def start(self) -> None:
        """Attach visibility observation and arm the staggered first tick."""
        slot = self._slot
        with slot.lock:
            if slot.phase is not SlotPhase.IDLE:
                return
            self._governor.attach(slot)
            delay = self._config.stagger_offset(slot.index)
            self._transition(SlotPhase.STAGGERED_START)
            self._arm(delay)
        logger.debug("SlotScheduler[%s]: started, first tick in %dms", slot.slot_id, delay)

    def stop(self) -> None:
        """Cancel the pending timer and detach visibility observation. Idempotent."""
        slot = self._slot
        with slot.lock:
            if slot.stopped:
                return
            slot.stopped = True
            previous = slot.phase
            slot.phase = SlotPhase.STOPPED
            slot.generation += 1
            if slot.timer is not None:
                slot.timer.cancel()
                slot.timer = None
        self._governor.detach(slot)
        self._notify(previous, SlotPhase.STOPPED)
        logger.debug("SlotScheduler[%s]: stopped", slot.slot_id)

    def notify_media_ended(self) -> None:
        """A non-looping video reached its end: rotate immediately."""
        slot = self._slot
        with slot.lock:
            if slot.stopped or slot.phase is not SlotPhase.ACTIVE_WAIT:
                return
            if not self._renderer.mark_ended(slot):
                return
            self._schedule(0)

    # Ticks --------------------------------------------------------------------

    def tick(self) -> None:
        """Run one fetch/select/apply cycle now and re-arm the slot."""
        self._run_tick(generation=None)

    def _on_timer(self, generation: int) -> None:
        with self._slot.lock:
            if self._slot.stopped or generation != self._slot.generation:
                return
            self._slot.timer = None
        self._run_tick(generation=generation)

    def _run_tick(self, generation: int | None) -> None:
        slot = self._slot
        with slot.tick_lock:
            with slot.lock:
                if slot.stopped:
                    return
                # A newer timer was armed while this one waited for the tick lock.
                if generation is not None and generation != slot.generation:
                    return

            if self._governor.page_hidden():
                logger.debug(
                    "SlotScheduler[%s]: page hidden, skipping fetch for %dms",
                    slot.slot_id, self._config.hidden_interval,
                )
                self._schedule(self._config.hidden_interval)
                return

            with slot.lock:
                if not self._transition(SlotPhase.FETCHING):
                    return

            try:
                candidates = self._fetcher.fetch_candidates()
            except FetchError as e:
                self._on_fetch_failure(e, e.attempts)
                return
            except Exception as e:
                logger.exception("SlotScheduler[%s]: unexpected fetch error", slot.slot_id)
                self._on_fetch_failure(e, 0)
                return

            with slot.lock:
                if slot.stopped:
                    logger.debug(
                        "SlotScheduler[%s]: discarding fetch result, slot stopped", slot.slot_id
                    )
                    return
                self._transition(SlotPhase.APPLYING)
                try:
                    chosen = self._selector.pick(candidates, self._history.snapshot())
                    self._renderer.apply(slot, chosen)
                except Exception:
                    logger.exception("SlotScheduler[%s]: failed to apply ad", slot.slot_id)
                    slot.consecutive_failures += 1
                    self._schedule(self._config.error_backoff)
                    return
                slot.consecutive_failures = 0
                self._schedule(display_interval(chosen, self._config))

    def _on_fetch_failure(self, error: BaseException, attempts: int) -> None:
        slot = self._slot
        with slot.lock:
            if slot.stopped:
                return
            slot.consecutive_failures += 1
            delay = self._config.error_backoff
            logger.warning(
                "SlotScheduler[%s]: fetch failed after %d attempts, backing off %dms: %s",
                slot.slot_id, attempts, delay, error,
            )
            self._schedule(delay)

    # Timer and state plumbing -------------------------------------------------

    def _schedule(self, delay_ms: int) -> None:
        with self._slot.lock:
            if not self._transition(SlotPhase.SCHEDULED):
                return
            self._arm(delay_ms)
            self._transition(SlotPhase.ACTIVE_WAIT)

    def _arm(self, delay_ms: int) -> None:
        slot = self._slot
        slot.generation += 1
        generation = slot.generation
        if slot.timer is not None:
            slot.timer.cancel()
        slot.next_delay_ms = delay_ms
        slot.timer = self._timers.call_later(
            delay_ms / 1000.0,
            lambda: self._on_timer(generation),
            label=slot.slot_id,
        )

    def _transition(self, target: SlotPhase) -> bool:
        slot = self._slot
        current = slot.phase
        if slot.stopped or current is SlotPhase.STOPPED:
            return False
        if target not in _TRANSITIONS[current]:
            raise RuntimeError(
                f"Illegal slot transition for {slot.slot_id}: {current.value} -> {target.value}"
            )
        slot.phase = target
        self._notify(current, target)
        return True

    def _notify(self, previous: SlotPhase, current: SlotPhase) -> None:
        if self._on_transition is None:
            return
        try:
            self._on_transition(self._slot.slot_id, previous, current)
        except Exception:
            logger.exception("SlotScheduler[%s]: transition listener raised", self._slot.slot_id)


class AdRotator:
    """Controller for every slot scheduler of one rotator instance."""

    def __init__(
        self,
        schedulers: Sequence[SlotScheduler],
        *,
        renderer: SlotRenderer,
        governor: VisibilityGovernor,
        history: RecentHistory,
        timers: TimerService,
        fetcher: AdFetcher,
        analytics: AnalyticsSink,
    ) -> None:
        self._schedulers = list(schedulers)
        self._by_id = {s.slot_id: s for s in self._schedulers}
        self._renderer = renderer
        self._governor = governor
        self._history = history
        self._timers = timers
        self._fetcher = fetcher
        self._analytics = analytics
        self._stopped = False

    @property
    def slot_ids(self) -> list[str]:
        return [s.slot_id for s in self._schedulers]

    @property
    def history(self) -> RecentHistory:
        return self._history

    @property
    def stopped(self) -> bool:
        return self._stopped

    def scheduler(self, slot_id: str) -> SlotScheduler:
        return self._by_id[slot_id]

    def start(self) -> None:
        for scheduler in self._schedulers:
            scheduler.start()
        logger.info("AdRotator: started %d slots", len(self._schedulers))

    def stop(self) -> None:
        """Stop every slot: cancel timers and detach visibility observation."""
        if self._stopped:
            return
        self._stopped = True
        for scheduler in self._schedulers:
            scheduler.stop()
        self._governor.disconnect()
        logger.info("AdRotator: stopped")

    def close(self) -> None:
        """Stop and release timers, HTTP sessions and the analytics worker."""
        self.stop()
        self._timers.shutdown()
        self._fetcher.close()
        close = getattr(self._analytics, "close", None)
        if close is not None:
            close()

    def refresh_now(self) -> None:
        """Tick every slot immediately, in order, ignoring failures."""
        for scheduler in self._schedulers:
            try:
                scheduler.tick()
            except Exception:
                logger.debug("AdRotator: refresh of %s failed", scheduler.slot_id, exc_info=True)

    def record_click(self, slot_id: str, href: str | None = None) -> None:
        scheduler = self._by_id.get(slot_id)
        if scheduler is None:
            return
        slot = scheduler.slot
        with slot.lock:
            ad_id = slot.current_ad_id
            if ad_id is None:
                return
            slot.record_click(ad_id)
            if href is None and slot.current_ad is not None:
                href = slot.current_ad.link_url
        self._analytics.click(ad_id, href)

    def toggle_sound(self, slot_id: str) -> bool | None:
        scheduler = self._by_id.get(slot_id)
        return self._renderer.toggle_sound(scheduler.slot) if scheduler else None

    def report_media_error(self, slot_id: str) -> None:
        scheduler = self._by_id.get(slot_id)
        if scheduler is not None:
            self._renderer.handle_media_error(scheduler.slot)

    def notify_media_ended(self, slot_id: str) -> None:
        scheduler = self._by_id.get(slot_id)
        if scheduler is not None:
            scheduler.notify_media_ended()

    def get_state(self) -> dict[str, Any]:
        ctr: dict[str, dict[str, int]] = {}
        slots: dict[str, dict[str, Any]] = {}
        for scheduler in self._schedulers:
            slot = scheduler.slot
            for ad_id, stats in slot.ctr().items():
                merged = ctr.setdefault(ad_id, {"impressions": 0, "clicks": 0})
                merged["impressions"] += stats["impressions"]
                merged["clicks"] += stats["clicks"]
            with slot.lock:
                slots[slot.slot_id] = {
                    "phase": slot.phase.value,
                    "current_ad_id": slot.current_ad_id,
                    "next_delay_ms": slot.next_delay_ms,
                    "consecutive_failures": slot.consecutive_failures,
                }
        return {
            "stopped": self._stopped,
            "recent": self._history.snapshot(),
            "ctr": ctr,
            "slots": slots,
        }


class NullRotator:
    """Controller returned when no slots matched; every operation is a no-op."""

    stopped = False

    @property
    def slot_ids(self) -> list[str]:
        return []

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None

    def close(self) -> None:
        return None

    def refresh_now(self) -> None:
        return None

    def record_click(self, slot_id: str, href: str | None = None) -> None:
        return None

    def toggle_sound(self, slot_id: str) -> None:
        return None

    def report_media_error(self, slot_id: str) -> None:
        return None

    def notify_media_ended(self, slot_id: str) -> None:
        return None

    def get_state(self) -> dict[str, Any]:
        return {}


def select_slots(sinks: Iterable[MediaSlotSink], selector: str) -> list[MediaSlotSink]:
    """Sinks whose slot id matches the fnmatch pattern ``selector``, in order."""
    return [sink for sink in sinks if fnmatch.fnmatchcase(sink.slot_id, selector)]


def rotate_ads(
    sinks: Iterable[MediaSlotSink],
    config: RotatorConfig | None = None,
    *,
    probe: VisibilityProbe | None = None,
    history: RecentHistory | None = None,
    store: HistoryStore | None = None,
    fetcher: AdFetcher | None = None,
    selector: AdSelector | None = None,
    analytics: AnalyticsSink | None = None,
    timers: TimerService | None = None,
    random_fn: RandomFn | None = None,
    bandwidth_probe: BandwidthProbe | None = None,
    on_transition: TransitionListener | None = None,
    autostart: bool = True,
) -> AdRotator | NullRotator:
    """
    Build (and by default start) a rotator for every sink matching the selector.

    Collaborators default to production implementations: real-time threading
    timers, a requests-backed fetcher, HTTP analytics and an in-memory history
    store. Tests inject stepped timers, fake sessions and seeded randomness.

    Returns a NullRotator when no sink matches ``config.slot_selector``.
    """
    config = config or RotatorConfig()
    matched = select_slots(sinks, config.slot_selector)
    if not matched:
        logger.warning("AdRotator: no slots match %r, rotation disabled", config.slot_selector)
        return NullRotator()

    timers = timers or ThreadingTimerService()
    probe = probe or ManualVisibilityProbe()
    governor = VisibilityGovernor(probe, threshold=config.min_video_play_visibility)
    if history is None:
        history = RecentHistory(
            store or InMemoryHistoryStore(),
            key=config.storage_key,
            limit=config.recently_shown_limit,
        )
    fetcher = fetcher or AdFetcher(config)
    selector = selector or AdSelector(random_fn, recent_penalty=config.recent_penalty)
    if analytics is None:
        analytics = HttpAnalytics(config.analytics_url) if config.analytics_endpoint else NullAnalytics()
    renderer = SlotRenderer(
        config,
        history,
        governor,
        analytics=analytics,
        bandwidth_probe=bandwidth_probe,
    )

    schedulers = [
        SlotScheduler(
            SlotState(slot_id=sink.slot_id, sink=sink, index=index),
            config=config,
            fetcher=fetcher,
            selector=selector,
            renderer=renderer,
            governor=governor,
            history=history,
            timers=timers,
            on_transition=on_transition,
        )
        for index, sink in enumerate(matched)
    ]
    rotator = AdRotator(
        schedulers,
        renderer=renderer,
        governor=governor,
        history=history,
        timers=timers,
        fetcher=fetcher,
        analytics=analytics,
    )
    if autostart:
        rotator.start()
    return rotator

"""Fire-and-forget analytics egress.

Impression and click events are POSTed as JSON from a single background
worker so that delivery never blocks a slot tick. Delivery failures are
discarded: they are neither retried nor surfaced.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Protocol, runtime_checkable

import requests

from .clock import epoch_ms

DELIVERY_TIMEOUT_S = 5.0


@runtime_checkable
class AnalyticsSink(Protocol):
    """Receives impression and click events."""

    def impression(self, ad_id: str) -> None: ...

    def click(self, ad_id: str, href: str | None = None) -> None: ...


class NullAnalytics:
    """Analytics sink that drops every event."""

    def impression(self, ad_id: str) -> None:
        return None

    def click(self, ad_id: str, href: str | None = None) -> None:
        return None

    def close(self) -> None:
        return None


class HttpAnalytics:
    """Posts events to the AdSource event endpoint on a background worker."""

    def __init__(
        self,
        url: str,
        *,
        session: requests.Session | None = None,
        timestamp_fn: Callable[[], int] = epoch_ms,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.url = url
        self._session = session or requests.Session()
        self._timestamp = timestamp_fn
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="adrotator-analytics"
        )
        self._lock = threading.Lock()
        self._inflight: set[Future] = set()
        self._closed = False

    def impression(self, ad_id: str) -> None:
        self.send({"type": "impression", "adId": ad_id, "ts": self._timestamp()})

    def click(self, ad_id: str, href: str | None = None) -> None:
        self.send({"type": "click", "adId": ad_id, "ts": self._timestamp(), "href": href})

    def send(self, payload: dict[str, Any]) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                future = self._executor.submit(self._deliver, payload)
            except RuntimeError:
                # Executor already shut down.
                return
            self._inflight.add(future)
        future.add_done_callback(self._forget)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for queued events to be delivered (or dropped)."""
        with self._lock:
            pending = list(self._inflight)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=False)

    def _deliver(self, payload: dict[str, Any]) -> None:
        try:
            self._session.post(self.url, json=payload, timeout=DELIVERY_TIMEOUT_S)
        except requests.RequestException:
            pass

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)

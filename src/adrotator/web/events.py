"""
Ad event recording for the AdSource API.

Counts impressions and clicks per ad id in memory and, unless disabled,
appends one JSON line per event to an event log.
"""

from __future__ import annotations

import json
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any, Callable

import structlog

_log = structlog.get_logger(__name__)

EVENT_TYPES = ("impression", "click")


class AdEventStore:
    """Thread-safe impression/click counters with an optional JSON-lines log."""

    def __init__(
        self,
        log_path: str | Path | None = None,
        *,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._log_path = Path(log_path) if log_path else None
        self._time = time_fn
        self._lock = threading.Lock()
        self._impressions: Counter = Counter()
        self._clicks: Counter = Counter()

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def record(
        self,
        event_type: str,
        ad_id: str,
        *,
        ip: str = "",
        ua: str = "",
        extra: dict[str, Any] | None = None,
    ) -> None:
        """
        Count one event and append it to the log.

        Raises:
            ValueError: for an unknown event type or an empty ad id.
            OSError: if the event log cannot be written.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        if not ad_id:
            raise ValueError("adId required")

        with self._lock:
            target = self._clicks if event_type == "click" else self._impressions
            target[ad_id] += 1
            if self._log_path is not None:
                line = json.dumps(
                    {
                        "time": int(self._time() * 1000),
                        "type": event_type,
                        "adId": ad_id,
                        "ip": ip,
                        "ua": ua,
                        "extra": extra or {},
                    }
                )
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        _log.debug("ad_event_recorded", event_type=event_type, ad_id=ad_id, ip=ip)

    def stats(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {"impressions": dict(self._impressions), "clicks": dict(self._clicks)}

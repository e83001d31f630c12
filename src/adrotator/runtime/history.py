"""Recently-shown ad history shared by every slot of a rotator.

The history is most-recent-first and bounded: appending beyond
``limit`` evicts the oldest entries. It is persisted through a
:class:`HistoryStore` after every write so that a fresh rotator (a page
reload) starts from the same list.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from adrotator.infra.exceptions import HistoryStoreError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


@runtime_checkable
class HistoryStore(Protocol):
    """Durable key/value storage for history lists."""

    def load(self, key: str) -> list[str]:
        """Return the stored list, or an empty list when nothing is stored."""

    def save(self, key: str, ids: list[str]) -> None:
        """Replace the stored list."""

    def clear(self, key: str) -> None:
        """Remove the stored list."""


class InMemoryHistoryStore:
    """Process-local store; survives rotator instances but not the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> list[str]:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return []
        return _decode(raw, key)

    def save(self, key: str, ids: list[str]) -> None:
        with self._lock:
            self._data[key] = json.dumps(ids)

    def clear(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileHistoryStore:
    """Stores each key as ``<directory>/<key>.json``, written atomically."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> list[str]:
        path = self.path_for(key)
        if not path.is_file():
            return []
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise HistoryStoreError(f"Cannot read history file {path}: {e}") from e
        return _decode(raw, key)

    def save(self, key: str, ids: list[str]) -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(ids, f)
            os.replace(tmp_name, path)
        except OSError as e:
            raise HistoryStoreError(f"Cannot write history file {path}: {e}") from e

    def clear(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise HistoryStoreError(f"Cannot remove history file: {e}") from e


class RecentHistory:
    """Bounded, persisted, thread-safe list of recently shown ad ids."""

    def __init__(
        self,
        store: HistoryStore | None = None,
        *,
        key: str = "ads.lastShown",
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self._store = store or InMemoryHistoryStore()
        self._key = key
        self._limit = limit
        self._lock = threading.Lock()
        self._ids: list[str] = self._load()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def key(self) -> str:
        return self._key

    def mark_shown(self, ad_id: str) -> None:
        """Record ``ad_id`` as the most recent entry and persist the list."""
        with self._lock:
            self._ids.insert(0, ad_id)
            del self._ids[self._limit:]
            snapshot = list(self._ids)
            self._persist(snapshot)

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._ids)

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()
            try:
                self._store.clear(self._key)
            except HistoryStoreError as e:
                logger.debug("RecentHistory[%s]: clear failed: %s", self._key, e)

    def __contains__(self, ad_id: object) -> bool:
        with self._lock:
            return ad_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def _load(self) -> list[str]:
        try:
            ids = self._store.load(self._key)
        except HistoryStoreError as e:
            logger.debug("RecentHistory[%s]: load failed, starting empty: %s", self._key, e)
            return []
        return ids[: self._limit]

    def _persist(self, ids: list[str]) -> None:
        try:
            self._store.save(self._key, ids)
        except HistoryStoreError as e:
            logger.debug("RecentHistory[%s]: persist failed: %s", self._key, e)


def _decode(raw: str, key: str) -> list[str]:
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug("RecentHistory[%s]: stored value is not JSON, ignoring", key)
        return []
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, str)]

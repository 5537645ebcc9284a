"""Recent-search history and its durable JSON storage."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable

import pydantic

from pipeline.config import settings
from pipeline.models import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_KEY = "postcodeHistory"

_file_locks: dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _file_locks_guard:
        return _file_locks.setdefault(path.resolve(), threading.Lock())


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocalStorage:
    """
    A small key/value store persisted as one JSON document on disk.

    Writes to the same file are serialised across threads and land through
    a rename, so readers never see a half-written document.
    """

    def __init__(self, path: str | Path = settings.storage_path):
        self._path = Path(path)
        self._lock = _lock_for(self._path)

    def get_item(self, key: str) -> Any:
        """Return the stored value for *key*, or None if absent."""
        if not self._path.is_file():
            return None
        doc = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(doc, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        return doc.get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            doc: dict[str, Any] = {}
            if self._path.is_file():
                try:
                    loaded = json.loads(self._path.read_text(encoding="utf-8"))
                    if isinstance(loaded, dict):
                        doc = loaded
                except ValueError:
                    logger.warning("Overwriting unreadable storage file %s", self._path)
            doc[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(f"{self._path.name}.{os.getpid()}.tmp")
            tmp.write_text(json.dumps(doc, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)


class PostcodeHistory:
    """
    Most-recent-first list of searched postcodes.

    At most one entry per postcode (re-adding moves it to the front) and
    at most *limit* entries overall.

    Changes are serialised, so one history can be shared between threads.
    """

    def __init__(
        self,
        entries: list[HistoryEntry] | None = None,
        limit: int = settings.history_limit,
        clock: Callable[[], int] = _now_ms,
    ):
        self._limit = limit
        self._clock = clock
        self._entries: list[HistoryEntry] = list(entries or [])[:limit]
        self._observers: list[Callable[[list[HistoryEntry]], None]] = []
        self._lock = threading.RLock()

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, observer: Callable[[list[HistoryEntry]], None]) -> None:
        self._observers.append(observer)

    def add(self, postcode: str, search_date: str) -> HistoryEntry:
        entry = HistoryEntry(
            postcode=postcode, search_date=search_date, timestamp=self._clock()
        )
        with self._lock:
            rest = [e for e in self._entries if e.postcode != postcode]
            self._commit([entry, *rest][: self._limit])
        return entry

    def remove(self, postcode: str) -> None:
        with self._lock:
            self._commit([e for e in self._entries if e.postcode != postcode])

    def clear(self) -> None:
        self._commit([])

    def _commit(self, entries: list[HistoryEntry]) -> None:
        with self._lock:
            self._entries = entries
            for observer in list(self._observers):
                observer(self.entries)


class HistoryStore:
    """Loads and saves PostcodeHistory under the ``postcodeHistory`` key."""

    def __init__(self, storage: LocalStorage | None = None):
        self._storage = storage or LocalStorage()

    def load(self, limit: int = settings.history_limit) -> PostcodeHistory:
        """
        Read saved history once at startup and keep it persisted.

        Missing or corrupt data yields an empty history rather than an error.
        """
        entries: list[HistoryEntry] = []
        try:
            raw = self._storage.get_item(HISTORY_KEY)
            if raw is not None:
                entries = [HistoryEntry.model_validate(item) for item in raw]
        except (OSError, ValueError, TypeError, pydantic.ValidationError) as exc:
            logger.error("Failed to load postcode history: %s", exc)
            entries = []

        history = PostcodeHistory(entries, limit=limit)
        history.subscribe(self.save)
        return history

    def save(self, entries: list[HistoryEntry]) -> None:
        self._storage.set_item(
            HISTORY_KEY, [e.model_dump(by_alias=True) for e in entries]
        )

from __future__ import annotations

import math
import threading
from datetime import datetime
from typing import Callable, Iterable

from .models import DocumentRow, TrackedDocument

INITIAL_ACCRUED_MINUTES = 1.0


class TrackingAggregator:
    """Owns the in-memory collection of tracked documents.

    Every mutation goes through this object under one lock: accrual from the
    scheduler, seeding from storage, and project/notes edits from the window.
    Callers only ever receive copies.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._documents: dict[str, TrackedDocument] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._documents

    def seed(self, documents: Iterable[TrackedDocument]) -> None:
        with self._lock:
            self._documents = {}
            for document in documents:
                loaded = document.copy()
                loaded.first_seen_at = None
                self._documents[loaded.name] = loaded

    def merge(self, names: Iterable[str], now: datetime | None = None) -> list[TrackedDocument]:
        """Fold one sample of open document names into the collection.

        Returns copies of the records whose accrued time changed (the dirty
        records), in the order they were first dirtied.
        """
        now = now or self._clock()
        dirty: dict[str, TrackedDocument] = {}
        with self._lock:
            for name in names:
                if not name:
                    continue
                if self._merge_one(name, now):
                    dirty[name] = self._documents[name]
            return [document.copy() for document in dirty.values()]

    def _merge_one(self, name: str, now: datetime) -> bool:
        document = self._documents.get(name)
        if document is None:
            self._documents[name] = TrackedDocument(
                name=name,
                first_seen_at=now,
                accrued_minutes=INITIAL_ACCRUED_MINUTES,
            )
            return True

        if document.first_seen_at is None:
            document.first_seen_at = now
            return False

        elapsed_seconds = (now - document.first_seen_at).total_seconds()
        candidate = float(math.floor((elapsed_seconds + document.accrued_minutes * 60) / 60))
        if candidate <= document.accrued_minutes:
            return False

        document.accrued_minutes = candidate
        document.first_seen_at = now
        return True

    def snapshot(self) -> list[TrackedDocument]:
        with self._lock:
            return [document.copy() for document in self._documents.values()]

    def get(self, name: str) -> TrackedDocument | None:
        with self._lock:
            document = self._documents.get(name)
            return document.copy() if document is not None else None

    def export_rows(self) -> list[DocumentRow]:
        with self._lock:
            return [
                DocumentRow(
                    name=document.name,
                    accrued_minutes=document.accrued_minutes,
                    project=document.project,
                    notes=document.notes,
                )
                for document in self._documents.values()
            ]

    def set_project(self, name: str, value: str) -> TrackedDocument:
        with self._lock:
            document = self._documents[name]
            document.project = value
            return document.copy()

    def set_notes(self, name: str, value: str) -> TrackedDocument:
        with self._lock:
            document = self._documents[name]
            document.notes = value
            return document.copy()

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()

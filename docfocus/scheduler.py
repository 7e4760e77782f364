from __future__ import annotations

import logging
import sqlite3
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Protocol

from .aggregator import TrackingAggregator
from .documents import DocumentQuery, default_document_query, document_names
from .errors import DocumentQueryError, ForegroundQueryError
from .foreground import ForegroundMonitor
from .models import SaveResult, TrackedDocument
from .session import MonitorSession

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[list[TrackedDocument]], None]
ErrorCallback = Callable[[str, str], None]

DEFAULT_INTERVAL_SECONDS = 1.0
MIN_INTERVAL_SECONDS = 0.5
MAX_INTERVAL_SECONDS = 60.0


class DocumentStore(Protocol):
    def upsert_documents(self, records: Iterable[TrackedDocument]) -> SaveResult:
        ...

    def clear_all(self) -> None:
        ...


class Foreground(Protocol):
    def is_foreground(self, monitored_pid: int | None) -> bool:
        ...


def clamp_interval(interval_seconds: float) -> float:
    return max(MIN_INTERVAL_SECONDS, min(MAX_INTERVAL_SECONDS, float(interval_seconds)))


class ErrorNotifier:
    """Forwards each distinct failure once until that kind of work succeeds again."""

    def __init__(self, callback: ErrorCallback | None = None):
        self._lock = threading.Lock()
        self._active: dict[str, str] = {}
        self.callback = callback

    def report(self, kind: str, message: str) -> bool:
        with self._lock:
            if self._active.get(kind) == message:
                return False
            self._active[kind] = message
        logger.warning("%s failure: %s", kind, message)
        callback = self.callback
        if callback is not None:
            callback(kind, message)
        return True

    def resolve(self, kind: str) -> None:
        with self._lock:
            self._active.pop(kind, None)


class TrackingScheduler:
    def __init__(
        self,
        aggregator: TrackingAggregator,
        store: DocumentStore,
        session: MonitorSession,
        foreground: Foreground | None = None,
        document_query: DocumentQuery | None = None,
    ):
        self._aggregator = aggregator
        self._store = store
        self._session = session
        self._foreground = foreground or ForegroundMonitor()
        self._document_query = document_query or default_document_query()
        self._notifier = ErrorNotifier()
        self._on_update: UpdateCallback | None = None

        self._interval_seconds = DEFAULT_INTERVAL_SECONDS
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        # Generation checks, merges and write submission happen under this lock
        # so a clear or a new selection cannot interleave with a merge.
        self._merge_lock = threading.Lock()
        self._in_flight: Future | None = None

        self._query_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docfocus-query")
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docfocus-writer")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def session(self) -> MonitorSession:
        return self._session

    @property
    def notifier(self) -> ErrorNotifier:
        return self._notifier

    def start(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> bool:
        interval_seconds = clamp_interval(interval_seconds)
        with self._lock:
            if self.is_running:
                return False

            self._interval_seconds = interval_seconds
            self._on_update = on_update
            self._notifier.callback = on_error
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_tick_loop,
                name="docfocus-scheduler",
                daemon=True,
            )
            self._thread.start()
            logger.info("Scheduler started (interval=%gs)", interval_seconds)
            return True

    def stop(self, timeout_seconds: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()

        thread.join(timeout=timeout_seconds)

        with self._lock:
            if self._thread is thread:
                self._thread = None
        logger.info("Scheduler stopped")

    def shutdown(self) -> None:
        self.stop()
        self._query_executor.shutdown(wait=False, cancel_futures=True)
        self._writer.shutdown(wait=True)

    def select_application(self, application_path: str | None) -> None:
        with self._merge_lock:
            self._session.select(application_path)

    def tick(self) -> Future | None:
        """Run one sampling step. Returns the submitted query, if any."""
        if not self._session.is_active:
            return None

        pid = self._session.resolve_pid()
        if not pid:
            return None

        try:
            foreground = self._foreground.is_foreground(pid)
        except ForegroundQueryError as exc:
            self._notifier.report("foreground", str(exc))
            return None
        self._notifier.resolve("foreground")
        if not foreground:
            return None

        with self._lock:
            if self._in_flight is not None and not self._in_flight.done():
                logger.debug("Previous document query still running; skipping tick")
                return None
            generation = self._session.generation
            future = self._query_executor.submit(self._sample, pid, generation)
            future.add_done_callback(self._report_query_failure)
            self._in_flight = future
            return future

    def save_all(self) -> Future:
        """Queue a save of the full collection behind any pending writes."""
        with self._merge_lock:
            return self._writer.submit(self._write, self._aggregator.snapshot())

    def clear_all(self) -> Future:
        with self._merge_lock:
            self._session.invalidate()
            self._aggregator.clear()
            return self._writer.submit(self._store.clear_all)

    def flush(self, timeout_seconds: float | None = None) -> None:
        """Block until the in-flight query and every queued write have finished."""
        with self._lock:
            in_flight = self._in_flight
        if in_flight is not None:
            in_flight.result(timeout=timeout_seconds)
        self._writer.submit(lambda: None).result(timeout=timeout_seconds)

    def _sample(self, pid: int, generation: int) -> list[TrackedDocument]:
        try:
            paths = self._document_query.open_documents(pid)
        except DocumentQueryError as exc:
            if generation == self._session.generation:
                self._notifier.report("query", str(exc))
            return []
        self._notifier.resolve("query")

        with self._merge_lock:
            if generation != self._session.generation:
                logger.debug("Discarding document query result from generation %s", generation)
                return []
            dirty = self._aggregator.merge(document_names(paths))
            if dirty:
                self._writer.submit(self._write, dirty).add_done_callback(self._report_write_failure)

        callback = self._on_update
        if dirty and callback is not None:
            callback(dirty)
        return dirty

    def _write(self, records: list[TrackedDocument]) -> SaveResult:
        try:
            result = self._store.upsert_documents(records)
        except sqlite3.Error as exc:
            self._notifier.report("save", f"Saving documents failed: {exc}")
            return SaveResult(saved=0, failed=tuple(record.name for record in records))

        if result.ok:
            self._notifier.resolve("save")
        else:
            self._notifier.report("save", "Could not save: " + ", ".join(result.failed))
        return result

    def _report_write_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error("Document write failed", exc_info=exc)
        self._notifier.report("save", f"Saving documents failed: {exc}")

    def _report_query_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error("Document sample failed", exc_info=exc)
        self._notifier.report("query", f"Reading open documents failed: {exc}")

    def _run_tick_loop(self) -> None:
        next_due = time.monotonic()

        while not self._stop_event.is_set():
            now = time.monotonic()
            if now < next_due:
                if self._stop_event.wait(next_due - now):
                    break

            try:
                self.tick()
            except Exception as exc:  # noqa: BLE001
                self._notifier.report("tick", str(exc))

            next_due = max(next_due + self._interval_seconds, time.monotonic() + 0.05)

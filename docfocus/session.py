from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.abspath(path)).rstrip(os.sep)


def executable_matches(application_path: str, exe: str | None) -> bool:
    """True when ``exe`` is the selected application or one of its bundle's own executables.

    For a macOS bundle only files directly under ``Contents/MacOS`` count;
    helper apps nested deeper in the bundle do not.
    """
    if not exe:
        return False
    selected = _normalize(application_path)
    candidate = _normalize(exe)
    if candidate == selected:
        return True
    if not selected.endswith(".app"):
        return False
    return os.path.dirname(candidate) == _normalize(os.path.join(selected, "Contents", "MacOS"))


def is_main_executable(application_path: str, exe: str | None) -> bool:
    """True for the selected executable itself or ``<Name>.app/Contents/MacOS/<Name>``."""
    if not executable_matches(application_path, exe):
        return False
    selected = _normalize(application_path)
    candidate = _normalize(exe)
    if candidate == selected:
        return True
    return os.path.basename(candidate) == os.path.splitext(os.path.basename(selected))[0]


def application_label(application_path: str | None) -> str:
    if not application_path:
        return "No application selected"
    return Path(application_path).name


class MonitorSession:
    """The monitored application for this run, plus a generation counter.

    The generation changes whenever the selection changes or data is cleared,
    so results of work started earlier can be recognised as stale.
    """

    def __init__(self, application_path: str | None = None):
        self._lock = threading.Lock()
        self._application_path = application_path or None
        self._generation = 0
        self._cached_pid: int | None = None

    @property
    def application_path(self) -> str | None:
        with self._lock:
            return self._application_path

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def is_active(self) -> bool:
        return self.application_path is not None

    def select(self, application_path: str | None) -> int:
        with self._lock:
            self._application_path = application_path or None
            self._cached_pid = None
            self._generation += 1
            generation = self._generation
        logger.info("Monitoring %s", application_label(application_path))
        return generation

    def invalidate(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def resolve_pid(self) -> int | None:
        with self._lock:
            application_path = self._application_path
            cached = self._cached_pid
        if application_path is None:
            return None

        if cached is not None and self._pid_matches(cached, application_path):
            return cached

        pid = self._scan_for_pid(application_path)
        with self._lock:
            if self._application_path == application_path:
                self._cached_pid = pid
        return pid

    @staticmethod
    def _pid_matches(pid: int, application_path: str) -> bool:
        try:
            return executable_matches(application_path, psutil.Process(pid).exe())
        except psutil.Error:
            return False

    @staticmethod
    def _scan_for_pid(application_path: str) -> int | None:
        # Main executable first, then the lowest pid.
        candidates: list[tuple[bool, int]] = []
        for proc in psutil.process_iter(["pid", "exe"]):
            info = proc.info
            exe = info.get("exe")
            if executable_matches(application_path, exe):
                candidates.append((not is_main_executable(application_path, exe), int(info["pid"])))
        if not candidates:
            return None
        return min(candidates)[1]

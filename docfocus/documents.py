"""Open-document queries against the monitored application's process."""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import PurePosixPath, PureWindowsPath
from typing import Protocol
from urllib.parse import unquote, urlparse

import psutil

from . import win32_windows
from .errors import DocumentQueryError

logger = logging.getLogger(__name__)

OSASCRIPT_TIMEOUT_SECONDS = 10.0

SYSTEM_PREFIXES = (
    "/proc/",
    "/sys/",
    "/dev/",
    "/run/",
    "/etc/",
    "/usr/",
    "/lib/",
    "/lib64/",
    "/opt/",
    "/snap/",
    "/var/",
)
LOCK_SUFFIXES = (".lock", ".lck", ".pid")
NON_DOCUMENT_SUFFIXES = {".db", ".sqlite", ".sqlite3", ".db-wal", ".db-shm", ".sqlite-wal", ".sqlite-shm", ".log", ".so"}

_AX_DOCUMENT_SCRIPT = """
tell application "System Events"
    set fileList to {}
    repeat with p in (processes whose unix id is {pid})
        try
            repeat with w in windows of p
                try
                    set filePath to value of attribute "AXDocument" of w
                    if filePath is not missing value then
                        set end of fileList to filePath
                    end if
                end try
            end repeat
        end try
    end repeat
end tell
set AppleScript's text item delimiters to linefeed
return fileList as text
"""


class DocumentQuery(Protocol):
    def open_documents(self, pid: int) -> list[str]:
        ...


def document_name(path: str) -> str:
    """Return the base name of a document path without its extension.

    Accepts plain POSIX or Windows paths and ``file://`` URLs.
    """
    raw = (path or "").strip()
    if raw.startswith("file://"):
        raw = unquote(urlparse(raw).path)
    if "\\" in raw:
        pure = PureWindowsPath(raw)
    else:
        pure = PurePosixPath(raw.rstrip("/"))
    return pure.stem


def document_names(paths: list[str]) -> list[str]:
    names: list[str] = []
    for path in paths:
        name = document_name(path)
        if name:
            names.append(name)
    return names


def document_from_window_title(title: str, app_name: str | None = None) -> str:
    """Document part of a "<document> - <App>" title, or "" for any other window."""
    # "Report.docx - Word", "*notes.txt - Notepad"
    if " - " not in title:
        return ""
    head = title.split(" - ", 1)[0].strip().lstrip("*").strip()
    if app_name and head.casefold() == app_name.casefold():
        return ""
    return head


def looks_like_document(path: str) -> bool:
    """Reject hidden, lock and system files held open by a process."""
    pure = PurePosixPath(path)
    if not pure.is_absolute():
        return False
    if any(part.startswith(".") for part in pure.parts[1:]):
        return False
    name = pure.name
    if name.startswith("~$") or name.endswith(LOCK_SUFFIXES):
        return False
    if pure.suffix.lower() in NON_DOCUMENT_SUFFIXES:
        return False
    return not any(str(pure).startswith(prefix) for prefix in SYSTEM_PREFIXES)


def parse_osascript_output(output: str) -> list[str]:
    paths: list[str] = []
    for line in output.splitlines():
        item = line.strip()
        if not item:
            continue
        if item.startswith("file://"):
            item = unquote(urlparse(item).path)
        paths.append(item)
    return paths


class MacDocumentQuery:
    def __init__(self, timeout_seconds: float = OSASCRIPT_TIMEOUT_SECONDS):
        self._timeout_seconds = timeout_seconds

    def open_documents(self, pid: int) -> list[str]:
        script = _AX_DOCUMENT_SCRIPT.replace("{pid}", str(int(pid)))
        try:
            completed = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise DocumentQueryError(f"osascript failed: {exc}") from exc

        if completed.returncode != 0:
            message = completed.stderr.strip() or f"exit status {completed.returncode}"
            raise DocumentQueryError(f"osascript failed: {message}")
        return parse_osascript_output(completed.stdout)


class WindowsDocumentQuery:
    def open_documents(self, pid: int) -> list[str]:
        try:
            titles = win32_windows.window_titles_for_pid(int(pid))
        except OSError as exc:
            raise DocumentQueryError(f"Window enumeration failed: {exc}") from exc
        app_name = _process_app_name(pid)
        documents: list[str] = []
        for title in titles:
            document = document_from_window_title(title, app_name)
            if document and document not in documents:
                documents.append(document)
        return documents


def _process_app_name(pid: int) -> str | None:
    try:
        name = psutil.Process(int(pid)).name()
    except psutil.Error:
        return None
    return PureWindowsPath(name).stem or None


class PsutilDocumentQuery:
    def open_documents(self, pid: int) -> list[str]:
        try:
            handles = psutil.Process(int(pid)).open_files()
        except psutil.NoSuchProcess as exc:
            raise DocumentQueryError(f"Process {pid} is no longer running") from exc
        except psutil.AccessDenied as exc:
            raise DocumentQueryError(f"Access denied reading open files of process {pid}") from exc
        except psutil.Error as exc:
            raise DocumentQueryError(f"Open-file query failed: {exc}") from exc
        return [handle.path for handle in handles if looks_like_document(handle.path)]


def default_document_query() -> DocumentQuery:
    if sys.platform == "darwin":
        return MacDocumentQuery()
    if sys.platform == "win32":
        return WindowsDocumentQuery()
    logger.info("No window-level document query on %s; using open file handles", sys.platform)
    return PsutilDocumentQuery()

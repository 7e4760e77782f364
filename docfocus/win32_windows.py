from __future__ import annotations

import ctypes
import sys
from ctypes import wintypes

if sys.platform == "win32":
    _user32 = ctypes.WinDLL("user32", use_last_error=True)

    _EnumWindowsProc = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.HWND, wintypes.LPARAM)

    _user32.GetForegroundWindow.restype = wintypes.HWND
    _user32.GetWindowTextLengthW.argtypes = [wintypes.HWND]
    _user32.GetWindowTextLengthW.restype = ctypes.c_int
    _user32.GetWindowTextW.argtypes = [wintypes.HWND, wintypes.LPWSTR, ctypes.c_int]
    _user32.GetWindowTextW.restype = ctypes.c_int
    _user32.GetWindowThreadProcessId.argtypes = [wintypes.HWND, ctypes.POINTER(wintypes.DWORD)]
    _user32.GetWindowThreadProcessId.restype = wintypes.DWORD
    _user32.IsWindowVisible.argtypes = [wintypes.HWND]
    _user32.IsWindowVisible.restype = wintypes.BOOL
    _user32.EnumWindows.argtypes = [_EnumWindowsProc, wintypes.LPARAM]
    _user32.EnumWindows.restype = wintypes.BOOL


def foreground_pid() -> int | None:
    if sys.platform != "win32":
        return None

    hwnd = _user32.GetForegroundWindow()
    if not hwnd:
        return None
    pid = _pid_for_hwnd(hwnd)
    return pid or None


def window_titles_for_pid(pid: int) -> list[str]:
    if sys.platform != "win32":
        return []

    titles: list[str] = []

    def _collect(hwnd, _lparam):
        if _user32.IsWindowVisible(hwnd) and _pid_for_hwnd(hwnd) == pid:
            title = _window_title(hwnd)
            if title:
                titles.append(title)
        return True

    if not _user32.EnumWindows(_EnumWindowsProc(_collect), 0):
        raise ctypes.WinError(ctypes.get_last_error())
    return titles


def _pid_for_hwnd(hwnd) -> int:
    pid = wintypes.DWORD()
    _user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
    return int(pid.value)


def _window_title(hwnd) -> str:
    length = _user32.GetWindowTextLengthW(hwnd)
    if length <= 0:
        return ""

    buffer = ctypes.create_unicode_buffer(length + 1)
    copied = _user32.GetWindowTextW(hwnd, buffer, len(buffer))
    if copied <= 0:
        return ""
    return buffer.value.strip()

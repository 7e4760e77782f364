from __future__ import annotations

import subprocess
import sys

from . import win32_windows
from .errors import ForegroundQueryError

_FRONTMOST_PID_SCRIPT = (
    'tell application "System Events" to get unix id of first application process whose frontmost is true'
)


def is_monitored_foreground(monitored_pid: int | None, active_pid: int | None) -> bool:
    if not monitored_pid or not active_pid:
        return False
    return int(monitored_pid) == int(active_pid)


class ForegroundMonitor:
    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout_seconds = timeout_seconds

    def is_foreground(self, monitored_pid: int | None) -> bool:
        if not monitored_pid:
            return False
        return is_monitored_foreground(monitored_pid, self.active_pid())

    def active_pid(self) -> int | None:
        if sys.platform == "win32":
            return win32_windows.foreground_pid()
        if sys.platform == "darwin":
            return self._run_for_pid(["osascript", "-e", _FRONTMOST_PID_SCRIPT])
        return self._run_for_pid(["xdotool", "getactivewindow", "getwindowpid"])

    def _run_for_pid(self, command: list[str]) -> int | None:
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ForegroundQueryError(
                f"{command[0]} is not installed; it is needed to detect the foreground application"
            ) from exc
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ForegroundQueryError(f"{command[0]} failed: {exc}") from exc

        if completed.returncode != 0:
            message = completed.stderr.strip() or f"exit status {completed.returncode}"
            raise ForegroundQueryError(f"{command[0]} failed: {message}")
        try:
            return int(completed.stdout.strip())
        except ValueError:
            return None

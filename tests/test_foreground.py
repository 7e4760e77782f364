from __future__ import annotations

import subprocess
import unittest
from unittest import mock

from docfocus.errors import ForegroundQueryError
from docfocus.foreground import ForegroundMonitor, is_monitored_foreground
from docfocus.session import MonitorSession, application_label, executable_matches, is_main_executable


class ForegroundTests(unittest.TestCase):
    def test_matching_pid_is_foreground(self) -> None:
        self.assertTrue(is_monitored_foreground(100, 100))
        self.assertFalse(is_monitored_foreground(100, 200))

    def test_nothing_selected_is_never_foreground(self) -> None:
        self.assertFalse(is_monitored_foreground(None, 100))
        self.assertFalse(is_monitored_foreground(0, 0))
        self.assertFalse(is_monitored_foreground(100, None))

    def test_monitor_skips_lookup_without_pid(self) -> None:
        monitor = ForegroundMonitor()
        with mock.patch.object(monitor, "active_pid") as active_pid:
            self.assertFalse(monitor.is_foreground(None))
        active_pid.assert_not_called()

    def test_monitor_compares_active_pid(self) -> None:
        monitor = ForegroundMonitor()
        with mock.patch.object(monitor, "active_pid", return_value=55):
            self.assertTrue(monitor.is_foreground(55))
            self.assertFalse(monitor.is_foreground(56))

    def test_command_failure_raises(self) -> None:
        monitor = ForegroundMonitor()
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="boom")
        with mock.patch("docfocus.foreground.subprocess.run", return_value=completed):
            with self.assertRaises(ForegroundQueryError):
                monitor._run_for_pid(["osascript", "-e", "x"])

    def test_missing_tool_raises(self) -> None:
        monitor = ForegroundMonitor()
        with mock.patch("docfocus.foreground.subprocess.run", side_effect=FileNotFoundError("xdotool")):
            with self.assertRaises(ForegroundQueryError) as ctx:
                monitor._run_for_pid(["xdotool", "getactivewindow", "getwindowpid"])
        self.assertIn("xdotool is not installed", str(ctx.exception))

    def test_command_output_is_parsed(self) -> None:
        monitor = ForegroundMonitor()
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="812\n", stderr="")
        with mock.patch("docfocus.foreground.subprocess.run", return_value=completed):
            self.assertEqual(monitor._run_for_pid(["osascript"]), 812)


class SessionTests(unittest.TestCase):
    def test_executable_matches_bundle_contents(self) -> None:
        self.assertTrue(executable_matches("/Applications/Pages.app", "/Applications/Pages.app/Contents/MacOS/Pages"))
        self.assertTrue(executable_matches("/usr/bin/libreoffice", "/usr/bin/libreoffice"))
        self.assertFalse(executable_matches("/Applications/Pages.app", "/Applications/Numbers.app/Contents/MacOS/Numbers"))
        self.assertFalse(executable_matches("/usr/bin/libreoffice", None))

    def test_nested_helper_apps_do_not_match(self) -> None:
        chrome = "/Applications/Google Chrome.app"
        helper = (
            chrome + "/Contents/Frameworks/Google Chrome Framework.framework/Helpers/"
            "Google Chrome Helper.app/Contents/MacOS/Google Chrome Helper"
        )
        self.assertFalse(executable_matches(chrome, helper))
        self.assertFalse(executable_matches(chrome, chrome + "/Contents/Resources/tool"))
        self.assertTrue(is_main_executable(chrome, chrome + "/Contents/MacOS/Google Chrome"))
        self.assertFalse(is_main_executable(chrome, chrome + "/Contents/MacOS/crashpad_handler"))

    def test_resolve_pid_prefers_main_executable(self) -> None:
        chrome = "/Applications/Google Chrome.app"
        helper = mock.Mock(info={"pid": 10, "exe": chrome + "/Contents/MacOS/crashpad_handler"})
        nested = mock.Mock(
            info={"pid": 5, "exe": chrome + "/Contents/Frameworks/Helpers/Google Chrome Helper.app/Contents/MacOS/Google Chrome Helper"}
        )
        main = mock.Mock(info={"pid": 20, "exe": chrome + "/Contents/MacOS/Google Chrome"})
        session = MonitorSession(chrome)
        with mock.patch("docfocus.session.psutil.process_iter", return_value=[nested, helper, main]):
            self.assertEqual(session.resolve_pid(), 20)

    def test_resolve_pid_takes_lowest_pid_among_bundle_executables(self) -> None:
        app = "/Applications/Tool.app"
        later = mock.Mock(info={"pid": 31, "exe": app + "/Contents/MacOS/agent"})
        earlier = mock.Mock(info={"pid": 14, "exe": app + "/Contents/MacOS/worker"})
        session = MonitorSession(app)
        with mock.patch("docfocus.session.psutil.process_iter", return_value=[later, earlier]):
            self.assertEqual(session.resolve_pid(), 14)

    def test_select_bumps_generation(self) -> None:
        session = MonitorSession()
        self.assertFalse(session.is_active)
        first = session.select("/Applications/Pages.app")
        second = session.select(None)
        self.assertGreater(second, first)
        self.assertFalse(session.is_active)

    def test_resolve_pid_scans_processes(self) -> None:
        proc = mock.Mock(info={"pid": 77, "exe": "/Applications/Pages.app/Contents/MacOS/Pages"})
        other = mock.Mock(info={"pid": 12, "exe": None})
        session = MonitorSession("/Applications/Pages.app")
        with mock.patch("docfocus.session.psutil.process_iter", return_value=[other, proc]):
            self.assertEqual(session.resolve_pid(), 77)

    def test_resolve_pid_without_selection(self) -> None:
        self.assertIsNone(MonitorSession().resolve_pid())

    def test_application_label(self) -> None:
        self.assertEqual(application_label("/Applications/Pages.app"), "Pages.app")
        self.assertEqual(application_label(None), "No application selected")


if __name__ == "__main__":
    unittest.main()

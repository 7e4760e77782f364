from __future__ import annotations

import importlib.util
import io
import unittest
from unittest import mock


@unittest.skipUnless(importlib.util.find_spec("tkinter"), "tkinter is not available")
class StartupTests(unittest.TestCase):
    def test_unwritable_data_directory_exits_cleanly(self) -> None:
        from docfocus import app

        stderr = io.StringIO()
        with mock.patch.object(app, "ensure_directories", side_effect=PermissionError("read-only file system")), \
                mock.patch.object(app, "configure_logging") as configure_logging, \
                mock.patch("sys.stderr", stderr):
            self.assertEqual(app.main([]), 1)
        configure_logging.assert_not_called()
        self.assertIn("DocFocus cannot start: read-only file system", stderr.getvalue())

    def test_unwritable_log_file_exits_cleanly(self) -> None:
        from docfocus import app

        stderr = io.StringIO()
        with mock.patch.object(app, "ensure_directories"), \
                mock.patch.object(app, "configure_logging", side_effect=OSError("no space left on device")), \
                mock.patch.object(app, "DocFocusDatabase") as database, \
                mock.patch("sys.stderr", stderr):
            self.assertEqual(app.main([]), 1)
        database.assert_not_called()
        self.assertIn("no space left on device", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()

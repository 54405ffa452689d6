"""Unit tests for logging helpers"""

import io
import logging
import tempfile
import unittest
from pathlib import Path

from cluster_state.log import SUCCESS, ColorFormatter, attach_log_file, log_success, print_separator


def record(level, message):
    return logging.LogRecord("cluster_state", level, __file__, 1, message, None, None)


class TestColorFormatter(unittest.TestCase):
    def test_plain(self):
        text = ColorFormatter(use_color=False).format(record(logging.WARNING, "[Drain] slow"))
        self.assertNotIn("\033[", text)
        self.assertTrue(text.endswith("WARNING [Drain] slow"))

    def test_colored(self):
        text = ColorFormatter(use_color=True).format(record(logging.ERROR, "failed"))
        self.assertTrue(text.startswith("\033[0;31m"))
        self.assertTrue(text.endswith("\033[0m"))

    def test_info_is_not_colored(self):
        text = ColorFormatter(use_color=True).format(record(logging.INFO, "hello"))
        self.assertNotIn("\033[", text)

    def test_success_level(self):
        self.assertEqual(logging.getLevelName(SUCCESS), "SUCCESS")
        text = ColorFormatter(use_color=False).format(record(SUCCESS, "done"))
        self.assertIn("SUCCESS done", text)


class TestLogFile(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.logger = logging.getLogger("cluster_state.tests.file")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

    def tearDown(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
        self.tmp.cleanup()

    def test_writes_without_duplicates(self):
        path = Path(self.tmp.name) / "pause.log"
        attach_log_file(self.logger, path)
        attach_log_file(self.logger, path)
        log_success(self.logger, "[State] saved")

        self.assertEqual(len(self.logger.handlers), 1)
        self.assertIn("SUCCESS [State] saved", path.read_text(encoding="utf-8"))

    def test_unwritable_path(self):
        with self.assertRaises(OSError):
            attach_log_file(self.logger, Path(self.tmp.name) / "missing" / "pause.log")


class TestSeparator(unittest.TestCase):
    def test_title_banner(self):
        out = io.StringIO()
        print_separator("Kubernetes Cluster Pause", stream=out, width=30)
        lines = out.getvalue().splitlines()
        self.assertEqual(lines[1], "=" * 30)
        self.assertEqual(lines[2].strip(), "Kubernetes Cluster Pause")


if __name__ == "__main__":
    unittest.main()

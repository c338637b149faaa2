from __future__ import annotations

import logging
import os
import tempfile
import unittest
from unittest import mock

from fleet.config import Settings
from fleet.logger import configure_logging


class ConfigureLoggingTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = logging.getLogger()
        self.saved_level = self.root.level
        self.saved_aiogram = logging.getLogger("aiogram.event").level

    def tearDown(self):
        self.root.setLevel(self.saved_level)
        logging.getLogger("aiogram.event").setLevel(self.saved_aiogram)
        self.tmp.cleanup()

    def test_installs_file_and_console_handlers(self):
        log_file = os.path.join(self.tmp.name, "logs", "fleet.log")
        settings = Settings(ADMIN_PASSWORD="pw", LOG_FILE=log_file, LOG_LEVEL="DEBUG")

        with mock.patch.object(self.root, "handlers", []):
            configure_logging(settings)
            handlers = list(self.root.handlers)
            # second call is a no-op
            configure_logging(settings)
            self.assertEqual(len(self.root.handlers), len(handlers))
        for handler in handlers:
            handler.close()

        self.assertEqual(len(handlers), 2)
        self.assertTrue(os.path.isdir(os.path.dirname(log_file)))
        self.assertEqual(self.root.level, logging.DEBUG)
        self.assertEqual(logging.getLogger("aiogram.event").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()

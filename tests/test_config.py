from __future__ import annotations

import os
import unittest
from unittest import mock

from fleet.config import Settings


class SettingsTests(unittest.TestCase):
    def test_from_env(self):
        env = {"ADMIN_PASSWORD": "pw", "PORT": "8081", "DB_PATH": "/tmp/x.db", "LOG_LEVEL": "debug"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.ADMIN_PASSWORD, "pw")
        self.assertEqual(settings.PORT, 8081)
        self.assertEqual(settings.DB_PATH, "/tmp/x.db")
        self.assertEqual(settings.LOG_LEVEL, "DEBUG")

    def test_missing_admin_password(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(RuntimeError):
                Settings.from_env()


if __name__ == "__main__":
    unittest.main()

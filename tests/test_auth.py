from __future__ import annotations

import unittest

from fleet.auth import authorize, is_admin
from fleet.db import BotConfig
from fleet.errors import Forbidden


def _config(owner="alice") -> BotConfig:
    return BotConfig(
        id=1, token="t", owner=owner, title="", enabled=True, force_join_channel=None,
        notify_new_user=False, reaction_enabled=True, reaction_emoji="❤️",
        created_at="2024-01-01 00:00:00",
    )


class AuthorizeTests(unittest.TestCase):
    def test_owner_without_password(self):
        authorize(_config(), admin_secret="s3cret", owner="alice")

    def test_admin_regardless_of_owner(self):
        authorize(_config(), admin_secret="s3cret", owner="mallory", admin_password="s3cret")
        authorize(_config(), admin_secret="s3cret", admin_password="s3cret")

    def test_neither_matches(self):
        with self.assertRaises(Forbidden):
            authorize(_config(), admin_secret="s3cret", owner="mallory", admin_password="guess")
        with self.assertRaises(Forbidden):
            authorize(_config(), admin_secret="s3cret")

    def test_is_admin(self):
        self.assertTrue(is_admin("s3cret", "s3cret"))
        self.assertFalse(is_admin("", "s3cret"))
        self.assertFalse(is_admin(None, "s3cret"))
        self.assertFalse(is_admin("x", ""))


if __name__ == "__main__":
    unittest.main()

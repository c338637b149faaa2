"""Exception types shared by the store, the registry and the HTTP layer."""
from __future__ import annotations


class FleetError(Exception):
    """Base class for every error raised on purpose by this package."""


class ConfigStoreError(FleetError):
    """A database read or write failed."""


class BotNotFound(FleetError):
    def __init__(self, bot_id: int):
        super().__init__(f"bot {bot_id} not found")
        self.bot_id = bot_id


class StartError(FleetError):
    """Base for failures while bringing a bot instance up."""


class LaunchFailed(StartError):
    """The adapter could not start polling (bad token, network down …)."""

    def __init__(self, bot_id: int, reason: str):
        super().__init__(f"bot {bot_id} failed to launch: {reason}")
        self.bot_id = bot_id
        self.reason = reason


class StopError(FleetError):
    """Shutdown of a poll loop reported an error. Logged, never propagated."""


class NotRunning(FleetError):
    def __init__(self, bot_id: int):
        super().__init__(f"bot {bot_id} is not running")
        self.bot_id = bot_id


class Forbidden(FleetError):
    def __init__(self, message: str = "forbidden"):
        super().__init__(message)

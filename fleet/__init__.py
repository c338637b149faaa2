"""Run many Telegram broadcast/reaction bots from one process."""

__version__ = "0.1.0"

import logging
from aiogram import BaseMiddleware
logger = logging.getLogger(__name__)

class ErrorLogger(BaseMiddleware):
    """Error sink for one bot: log the failure with the bot label, then let
    aiogram's dispatcher absorb it so polling carries on."""

    def __init__(self, label: str = ""):
        self.label = label

    async def __call__(self, handler, event, data):
        try:
            return await handler(event, data)
        except Exception as exc:      # noqa: BLE001
            logger.exception("Unhandled error in bot %s: %s", self.label, exc)
            raise

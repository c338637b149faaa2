"""Thin aiogram wrapper: one Bot + Dispatcher per token, long polling in a task.

The registry only talks to the small surface defined by `MessagingAdapter`
so tests can swap in a fake without touching Telegram.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from aiogram import Bot, Dispatcher, Router
from aiogram.filters import CommandStart
from aiogram.types import Message, ReplyParameters

from .errors import StopError
from .middlewares.error_logger import ErrorLogger

log = logging.getLogger(__name__)


@dataclass
class Subscription:
    """A user pressed /start."""

    user_id: int
    chat_id: int
    username: str = ""
    first_name: str = ""
    last_name: str = ""


@dataclass
class InboundMessage:
    chat_id: int
    message_id: int
    user_id: Optional[int] = None
    text: str = ""


SubscribeHandler = Callable[[Subscription], Awaitable[None]]
MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class MessagingAdapter:
    """Interface the registry relies on."""

    def on_subscribe(self, handler: SubscribeHandler) -> None:
        raise NotImplementedError

    def on_message(self, handler: MessageHandler) -> None:
        raise NotImplementedError

    async def launch(self) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError

    async def send_message(self, user_id: int, text: str) -> None:
        raise NotImplementedError

    async def reply(self, chat_id: int, message_id: int, text: str) -> None:
        raise NotImplementedError


class AiogramAdapter(MessagingAdapter):
    def __init__(self, token: str, label: str = ""):
        self.label = label
        self.bot = Bot(token)
        self.dp = Dispatcher()
        self.router = Router(name=f"fleet-{label}" if label else None)
        self.dp.include_router(self.router)
        self.dp.update.outer_middleware(ErrorLogger(label))
        self._task: Optional[asyncio.Task] = None

    # ----------------------------- handlers -----------------------------------
    def on_subscribe(self, handler: SubscribeHandler) -> None:
        async def _on_start(message: Message):
            user = message.from_user
            if user is None:
                return
            await handler(
                Subscription(
                    user_id=user.id,
                    chat_id=message.chat.id,
                    username=user.username or "",
                    first_name=user.first_name or "",
                    last_name=user.last_name or "",
                )
            )

        self.router.message.register(_on_start, CommandStart())

    def on_message(self, handler: MessageHandler) -> None:
        async def _on_message(message: Message):
            await handler(
                InboundMessage(
                    chat_id=message.chat.id,
                    message_id=message.message_id,
                    user_id=message.from_user.id if message.from_user else None,
                    text=message.text or message.caption or "",
                )
            )

        self.router.message.register(_on_message, ~CommandStart())

    # ----------------------------- lifecycle ----------------------------------
    async def launch(self) -> None:
        """Validate the token and start long polling in the background.

        Raises whatever aiogram raises for a bad token or unreachable API.
        """
        try:
            me = await self.bot.get_me()
        except Exception:
            await self.bot.session.close()
            raise
        self._task = asyncio.create_task(
            self.dp.start_polling(self.bot, handle_signals=False, close_bot_session=True),
            name=f"poll-{self.label or me.username}",
        )
        log.info("Polling started for @%s (%s)", me.username, self.label)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            await self.bot.session.close()
            return
        try:
            await self.dp.stop_polling()
        except RuntimeError:
            # polling task has not entered its loop yet
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            await self.bot.session.close()
        except Exception as exc:
            raise StopError(f"poll loop for {self.label} ended with {exc!r}") from exc

    # ----------------------------- sending ------------------------------------
    async def send_message(self, user_id: int, text: str) -> None:
        await self.bot.send_message(chat_id=user_id, text=text)

    async def reply(self, chat_id: int, message_id: int, text: str) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_parameters=ReplyParameters(message_id=message_id),
        )

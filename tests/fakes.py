from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set

from fleet.adapter import InboundMessage, MessagingAdapter, Subscription


class FakeAdapter(MessagingAdapter):
    def __init__(self, token: str, factory: "FakeFactory"):
        self.token = token
        self.factory = factory
        self.subscribe_handler = None
        self.message_handler = None
        self.launched = False
        self.stopped = False
        self.sent: List[tuple] = []
        self.replies: List[tuple] = []
        self.fail_send_to: Set[int] = set()
        self.fail_reply = False

    def on_subscribe(self, handler):
        self.subscribe_handler = handler

    def on_message(self, handler):
        self.message_handler = handler

    async def launch(self):
        self.factory.launch_calls += 1
        if self.factory.gate is not None:
            await self.factory.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.factory.launch_error is not None:
            raise self.factory.launch_error
        self.launched = True

    async def stop(self):
        if self.factory.stop_gate is not None:
            await self.factory.stop_gate.wait()
        self.stopped = True
        if self.factory.stop_error is not None:
            raise self.factory.stop_error

    async def send_message(self, user_id: int, text: str):
        if user_id in self.fail_send_to:
            raise RuntimeError("Forbidden: bot was blocked by the user")
        self.sent.append((user_id, text))

    async def reply(self, chat_id: int, message_id: int, text: str):
        if self.fail_reply:
            raise RuntimeError("Bad Request: message to reply not found")
        self.replies.append((chat_id, message_id, text))

    # test helpers
    async def subscribe(self, user_id: int, username: str = "", first_name: str = "", last_name: str = ""):
        await self.subscribe_handler(
            Subscription(user_id=user_id, chat_id=user_id, username=username,
                         first_name=first_name, last_name=last_name)
        )

    async def message(self, chat_id: int, message_id: int, text: str = "hi"):
        await self.message_handler(InboundMessage(chat_id=chat_id, message_id=message_id,
                                                  user_id=chat_id, text=text))


class FakeFactory:
    """Adapter factory recording every adapter it builds."""

    def __init__(self):
        self.created: Dict[int, List[FakeAdapter]] = {}
        self.launch_calls = 0
        self.launch_error: Optional[BaseException] = None
        self.stop_error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None
        self.stop_gate: Optional[asyncio.Event] = None

    def __call__(self, config) -> FakeAdapter:
        adapter = FakeAdapter(config.token, self)
        self.created.setdefault(config.id, []).append(adapter)
        return adapter

    def last(self, bot_id: int) -> FakeAdapter:
        return self.created[bot_id][-1]

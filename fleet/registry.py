"""Per-bot lifecycle engine. At most one live adapter per bot id, started from
the persisted config and kept until the bot is disabled or the process exits."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .adapter import AiogramAdapter, InboundMessage, MessagingAdapter, Subscription
from .db import BotConfig, Database
from .errors import LaunchFailed

log = logging.getLogger(__name__)

FORCE_JOIN_TEMPLATE = "Please join this channel first: {channel}"

AdapterFactory = Callable[[BotConfig], MessagingAdapter]


def aiogram_factory(config: BotConfig) -> MessagingAdapter:
    return AiogramAdapter(config.token, label=str(config.id))


@dataclass
class RunningInstance:
    bot_id: int
    adapter: MessagingAdapter
    token: str  # snapshot taken at launch; later token edits need a restart


class BotRegistry:
    def __init__(self, db: Database, adapter_factory: AdapterFactory = aiogram_factory):
        self.db = db
        self._factory = adapter_factory
        self._instances: Dict[int, RunningInstance] = {}
        # start/stop for one id never interleave; entries live while in use
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}
        # launch in progress per id; duplicate start() calls await this one
        self._launching: Dict[int, asyncio.Future] = {}

    # ----------------------------- public API ---------------------------------
    def get(self, bot_id: int) -> Optional[RunningInstance]:
        return self._instances.get(bot_id)

    def running_ids(self) -> List[int]:
        return sorted(self._instances)

    async def start(self, config: BotConfig) -> RunningInstance:
        """Launch the bot unless it is already live.

        The registered-instance check happens under the per-id lock, so a
        start issued while a stop is in flight waits for it and relaunches.
        Raises LaunchFailed if the adapter cannot start polling; nothing is
        registered in that case.
        """
        pending = self._launching.get(config.id)
        if pending is None:
            pending = asyncio.ensure_future(self._launch(config))
            self._launching[config.id] = pending
        return await asyncio.shield(pending)

    async def stop(self, bot_id: int) -> bool:
        """Stop the bot's poll loop. Returns False if it was not running."""
        async with self._guard(bot_id):
            inst = self._instances.get(bot_id)
            if inst is None:
                return False
            try:
                await inst.adapter.stop()
            except Exception as exc:
                log.warning("Bot %s did not stop cleanly: %s", bot_id, exc)
            finally:
                self._instances.pop(bot_id, None)
            log.info("Bot %s stopped", bot_id)
            return True

    async def stop_all(self):
        for bot_id in list(self._instances.keys()):
            await self.stop(bot_id)

    async def reconcile_all(self, configs: Iterable[BotConfig]) -> List[int]:
        """Start every enabled bot. Meant to run once at process start."""
        enabled = [c for c in configs if c.enabled]
        results = await asyncio.gather(
            *(self.start(c) for c in enabled), return_exceptions=True
        )
        started = []
        for config, result in zip(enabled, results):
            if isinstance(result, BaseException):
                log.error("Bot %s not started: %s", config.id, result)
            else:
                started.append(config.id)
        log.info("Reconciled %d/%d enabled bots", len(started), len(enabled))
        return started

    # ----------------------------- internals ----------------------------------
    @contextlib.asynccontextmanager
    async def _guard(self, bot_id: int):
        """Hold the per-id lock; drop it once unused and the bot is not live."""
        lock = self._locks.get(bot_id)
        if lock is None:
            lock = self._locks[bot_id] = asyncio.Lock()
        self._lock_users[bot_id] = self._lock_users.get(bot_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[bot_id] -= 1
            if not self._lock_users[bot_id]:
                del self._lock_users[bot_id]
                if bot_id not in self._instances:
                    self._locks.pop(bot_id, None)

    async def _launch(self, config: BotConfig) -> RunningInstance:
        try:
            async with self._guard(config.id):
                inst = self._instances.get(config.id)
                if inst is not None:
                    return inst

                try:
                    # aiogram rejects malformed tokens in the constructor
                    adapter = self._factory(config)
                    adapter.on_subscribe(self._subscription_handler(config, adapter))
                    if config.reaction_enabled:
                        adapter.on_message(self._reaction_handler(config, adapter))
                    await adapter.launch()
                except Exception as exc:
                    log.error("Failed launching bot %s: %s", config.id, exc)
                    raise LaunchFailed(config.id, str(exc) or type(exc).__name__) from exc

                inst = RunningInstance(config.id, adapter, config.token)
                self._instances[config.id] = inst
                log.info("Launched bot %s", config.id)
                return inst
        finally:
            self._launching.pop(config.id, None)

    async def _current_config(self, snapshot: BotConfig) -> Optional[BotConfig]:
        return await self.db.get_bot(snapshot.id)

    def _subscription_handler(self, snapshot: BotConfig, adapter: MessagingAdapter):
        bot_id = snapshot.id

        async def _on_subscribe(sub: Subscription):
            is_new = await self.db.upsert_subscriber(
                bot_id, sub.user_id, sub.username, sub.first_name, sub.last_name
            )
            config = await self._current_config(snapshot) or snapshot

            if is_new and config.notify_new_user:
                await self.db.add_notification(bot_id, sub.user_id, sub.username)

            if config.force_join_channel:
                try:
                    await adapter.send_message(
                        sub.chat_id,
                        FORCE_JOIN_TEMPLATE.format(channel=config.force_join_channel),
                    )
                except Exception as exc:
                    log.warning("Force-join reminder to %s via bot %s failed: %s",
                                sub.user_id, bot_id, exc)

        return _on_subscribe

    def _reaction_handler(self, snapshot: BotConfig, adapter: MessagingAdapter):
        bot_id = snapshot.id

        async def _on_message(msg: InboundMessage):
            config = await self._current_config(snapshot)
            if config is None or not config.reaction_enabled:
                return
            try:
                await adapter.reply(msg.chat_id, msg.message_id, config.reaction_emoji)
            except Exception as exc:
                log.debug("Reaction in chat %s via bot %s failed: %s", msg.chat_id, bot_id, exc)

        return _on_message

"""One-shot fan-out of a text message to every subscriber of a bot."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .db import Database
from .errors import NotRunning
from .registry import BotRegistry

log = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    attempted: int
    sent: int


async def broadcast(db: Database, registry: BotRegistry, bot_id: int, message: str) -> BroadcastResult:
    """Send *message* to all subscribers of *bot_id* through its live instance.

    Per-recipient failures (blocked bot, deleted chat …) are counted, not
    raised. One broadcast record is appended however many sends succeed.
    """
    inst = registry.get(bot_id)
    if inst is None:
        raise NotRunning(bot_id)

    recipients = await db.list_subscriber_ids(bot_id)
    sent = 0
    for user_id in recipients:
        try:
            await inst.adapter.send_message(user_id, message)
            sent += 1
        except Exception as exc:
            log.debug("Broadcast to %s via bot %s failed: %s", user_id, bot_id, exc)

    await db.add_broadcast(bot_id, message)
    log.info("Broadcast via bot %s: %d/%d delivered", bot_id, sent, len(recipients))
    return BroadcastResult(attempted=len(recipients), sent=sent)

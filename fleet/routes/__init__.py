"""HTTP route tables. Each module exposes ``routes`` for ``app.add_routes``."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from aiohttp import web

from fleet.config import Settings
from fleet.db import BotConfig, Database
from fleet.errors import BotNotFound
from fleet.registry import BotRegistry
from fleet.server import DB_KEY, REGISTRY_KEY, SETTINGS_KEY


def services(request: web.Request) -> Tuple[Settings, Database, BotRegistry]:
    app = request.app
    return app[SETTINGS_KEY], app[DB_KEY], app[REGISTRY_KEY]


async def read_body(request: web.Request) -> Dict[str, Any]:
    if not request.body_exists:
        return {}
    body = await request.json()
    if not isinstance(body, dict):
        raise ValueError("JSON object expected")
    return body


async def load_bot(db: Database, bot_id: int) -> BotConfig:
    config = await db.get_bot(bot_id)
    if config is None:
        raise BotNotFound(bot_id)
    return config


def bot_json(config: BotConfig, registry: BotRegistry) -> Dict[str, Any]:
    data = config.public()
    data["running"] = registry.get(config.id) is not None
    return data

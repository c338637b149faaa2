"""
fleet/routes/bots.py
--------------------
Per-bot management:
• POST /api/bots                    – register a token and start it
• GET  /api/bots[?owner=]           – list bots
• POST /api/bots/{id}/toggle        – enable / disable (starts or stops polling)
• POST /api/bots/{id}/settings      – title, notify, reaction, token
• POST /api/bots/{id}/force_join    – set or clear the force-join channel
• POST /api/bots/{id}/broadcast     – fan a message out to every subscriber
• GET  /api/bots/{id}/stats         – subscriber / broadcast counts
• GET  /api/bots/{id}/broadcasts    – broadcast history

Mutating routes take ``owner`` or ``admin_password`` in the body.
"""
from __future__ import annotations

import logging

from aiohttp import web

from fleet.auth import authorize
from fleet.broadcast import broadcast
from fleet.errors import LaunchFailed
from fleet.routes import bot_json, load_bot, read_body, services

routes = web.RouteTableDef()
logger = logging.getLogger(__name__)

_BOOL_FIELDS = ("notify_new_user", "reaction_enabled")
_TEXT_FIELDS = ("title", "reaction_emoji", "token")


def _authorize(settings, config, creds: dict) -> None:
    authorize(
        config,
        admin_secret=settings.ADMIN_PASSWORD,
        owner=creds.get("owner"),
        admin_password=creds.get("admin_password"),
    )


def _settings_update(body: dict) -> dict:
    fields = {}
    for name in _BOOL_FIELDS:
        if name in body:
            if not isinstance(body[name], bool):
                raise ValueError(f"{name} must be a boolean")
            fields[name] = body[name]
    for name in _TEXT_FIELDS:
        if name in body:
            value = body[name]
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string")
            if name != "title" and not value.strip():
                raise ValueError(f"{name} must not be empty")
            fields[name] = value.strip()
    return fields

# -----------------------------------------------------------------------------
# Create / list
# -----------------------------------------------------------------------------

@routes.post("/api/bots")
async def create_bot(request: web.Request) -> web.Response:
    _, db, registry = services(request)
    body = await read_body(request)
    token, owner = body.get("token"), body.get("owner")
    if not token or not owner:
        return web.json_response({"error": "token and owner required"}, status=400)

    config = await db.create_bot(str(token).strip(), str(owner), str(body.get("title") or ""))
    logger.info("Bot %s registered for %s", config.id, config.owner)

    payload = {}
    try:
        await registry.start(config)
    except LaunchFailed as exc:
        payload["error"] = exc.reason
    payload["bot"] = bot_json(config, registry)
    return web.json_response(payload, status=201)


@routes.get("/api/bots")
async def list_bots(request: web.Request) -> web.Response:
    _, db, registry = services(request)
    owner = request.query.get("owner") or None
    bots = await db.list_bots(owner=owner)
    return web.json_response({"bots": [bot_json(b, registry) for b in bots]})

# -----------------------------------------------------------------------------
# Lifecycle & settings
# -----------------------------------------------------------------------------

@routes.post(r"/api/bots/{bot_id:\d+}/toggle")
async def toggle_bot(request: web.Request) -> web.Response:
    settings, db, registry = services(request)
    bot_id = int(request.match_info["bot_id"])
    body = await read_body(request)
    config = await load_bot(db, bot_id)
    _authorize(settings, config, body)

    enable = bool(body.get("enable"))
    config = await db.set_enabled(bot_id, enable)
    if enable:
        await registry.start(config)
    else:
        await registry.stop(bot_id)
    logger.info("Bot %s %s", bot_id, "enabled" if enable else "disabled")
    return web.json_response({"ok": True, "running": registry.get(bot_id) is not None})


@routes.post(r"/api/bots/{bot_id:\d+}/settings")
async def update_settings(request: web.Request) -> web.Response:
    settings, db, registry = services(request)
    bot_id = int(request.match_info["bot_id"])
    body = await read_body(request)
    config = await load_bot(db, bot_id)
    _authorize(settings, config, body)

    fields = _settings_update(body)
    if not fields:
        return web.json_response({"error": "nothing to update"}, status=400)
    config = await db.update_bot(bot_id, **fields)
    if "token" in fields and registry.get(bot_id) is not None:
        logger.info("Bot %s token changed; takes effect after the next restart", bot_id)
    return web.json_response({"ok": True, "bot": bot_json(config, registry)})


@routes.post(r"/api/bots/{bot_id:\d+}/force_join")
async def update_force_join(request: web.Request) -> web.Response:
    settings, db, _ = services(request)
    bot_id = int(request.match_info["bot_id"])
    body = await read_body(request)
    config = await load_bot(db, bot_id)
    _authorize(settings, config, body)

    channel = body.get("channel")
    if channel is not None and not isinstance(channel, str):
        raise ValueError("channel must be a string")
    await db.update_bot(bot_id, force_join_channel=(channel or "").strip() or None)
    return web.json_response({"ok": True})

# -----------------------------------------------------------------------------
# Broadcast & stats
# -----------------------------------------------------------------------------

@routes.post(r"/api/bots/{bot_id:\d+}/broadcast")
async def broadcast_message(request: web.Request) -> web.Response:
    settings, db, registry = services(request)
    bot_id = int(request.match_info["bot_id"])
    body = await read_body(request)
    config = await load_bot(db, bot_id)
    _authorize(settings, config, body)

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        return web.json_response({"error": "message required"}, status=400)

    result = await broadcast(db, registry, bot_id, message)
    return web.json_response({"ok": True, "attempted": result.attempted, "sent": result.sent})


@routes.get(r"/api/bots/{bot_id:\d+}/stats")
async def bot_stats(request: web.Request) -> web.Response:
    _, db, registry = services(request)
    bot_id = int(request.match_info["bot_id"])
    config = await load_bot(db, bot_id)
    stats = {
        "totalUsers": await db.count_subscribers(bot_id),
        "broadcasts": await db.count_broadcasts(bot_id),
        "running": registry.get(bot_id) is not None,
    }
    return web.json_response({"bot": bot_json(config, registry), "stats": stats})


@routes.get(r"/api/bots/{bot_id:\d+}/broadcasts")
async def broadcast_history(request: web.Request) -> web.Response:
    settings, db, _ = services(request)
    bot_id = int(request.match_info["bot_id"])
    config = await load_bot(db, bot_id)
    _authorize(settings, config, request.query)

    records = await db.list_broadcasts(bot_id)
    return web.json_response({
        "broadcasts": [
            {"id": r.id, "message": r.message, "created_at": r.created_at} for r in records
        ]
    })

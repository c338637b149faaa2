"""
fleet/routes/admin.py
---------------------
Admin-only endpoints guarded by the shared ADMIN_PASSWORD:
• POST /api/admin/login
• POST /api/admin/toggle_all
• GET  /api/admin/notifications[?unseen=1&bot_id=]
• POST /api/admin/notifications/seen
"""
from __future__ import annotations

import logging

from aiohttp import web

from fleet.auth import is_admin
from fleet.errors import Forbidden, LaunchFailed
from fleet.routes import read_body, services

routes = web.RouteTableDef()
logger = logging.getLogger(__name__)


def _require_admin(settings, password) -> None:
    if not is_admin(password, settings.ADMIN_PASSWORD):
        raise Forbidden()


@routes.post("/api/admin/login")
async def login(request: web.Request) -> web.Response:
    settings, *_ = services(request)
    body = await read_body(request)
    if is_admin(body.get("password"), settings.ADMIN_PASSWORD):
        return web.json_response({"ok": True})
    return web.json_response({"error": "invalid"}, status=401)


@routes.post("/api/admin/toggle_all")
async def toggle_all(request: web.Request) -> web.Response:
    settings, db, registry = services(request)
    body = await read_body(request)
    _require_admin(settings, body.get("admin_password"))

    enable = bool(body.get("enable"))
    bots = await db.list_bots()
    failed = []
    for config in bots:
        config = await db.set_enabled(config.id, enable)
        if enable:
            try:
                await registry.start(config)
            except LaunchFailed as exc:
                failed.append({"id": config.id, "error": exc.reason})
        else:
            await registry.stop(config.id)
    logger.info("Admin %s %d bots (%d failed)",
                "enabled" if enable else "disabled", len(bots), len(failed))
    return web.json_response({"ok": True, "count": len(bots), "failed": failed})


@routes.get("/api/admin/notifications")
async def list_notifications(request: web.Request) -> web.Response:
    settings, db, _ = services(request)
    password = request.headers.get("X-Admin-Password") or request.query.get("admin_password")
    _require_admin(settings, password)

    bot_id = request.query.get("bot_id")
    unseen = request.query.get("unseen", "").lower() in ("1", "true", "yes")
    records = await db.list_notifications(
        bot_id=int(bot_id) if bot_id else None, unseen_only=unseen
    )
    return web.json_response({
        "notifications": [
            {
                "id": n.id,
                "bot_id": n.bot_id,
                "user_id": n.platform_user_id,
                "username": n.username,
                "created_at": n.created_at,
                "seen": n.seen,
            }
            for n in records
        ]
    })


@routes.post("/api/admin/notifications/seen")
async def mark_seen(request: web.Request) -> web.Response:
    settings, db, _ = services(request)
    body = await read_body(request)
    _require_admin(settings, body.get("admin_password"))

    ids = body.get("ids")
    if ids is not None and (
        not isinstance(ids, list) or not all(isinstance(i, int) for i in ids)
    ):
        raise ValueError("ids must be a list of integers")
    updated = await db.mark_notifications_seen(ids)
    return web.json_response({"ok": True, "updated": updated})

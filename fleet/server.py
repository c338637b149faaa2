"""aiohttp application hosting the JSON management API."""
from __future__ import annotations

import json
import logging

from aiohttp import web

from .config import Settings
from .db import Database
from .errors import BotNotFound, ConfigStoreError, Forbidden, LaunchFailed, NotRunning
from .registry import BotRegistry

logger = logging.getLogger(__name__)

SETTINGS_KEY = web.AppKey("settings", Settings)
DB_KEY = web.AppKey("db", Database)
REGISTRY_KEY = web.AppKey("registry", BotRegistry)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map domain errors onto HTTP status codes."""
    try:
        return await handler(request)
    except BotNotFound:
        return _error(404, "bot not found")
    except Forbidden:
        return _error(403, "forbidden")
    except NotRunning:
        return _error(409, "bot is not running")
    except LaunchFailed as exc:
        return _error(502, exc.reason)
    except ConfigStoreError as exc:
        logger.error("Store failure on %s %s: %s", request.method, request.path, exc)
        return _error(500, "database error")
    except (json.JSONDecodeError, ValueError) as exc:
        return _error(400, str(exc) or "bad request")


def create_app(settings: Settings, db: Database, registry: BotRegistry) -> web.Application:
    from .routes.admin import routes as admin_routes
    from .routes.bots import routes as bot_routes

    app = web.Application(middlewares=[error_middleware])
    app[SETTINGS_KEY] = settings
    app[DB_KEY] = db
    app[REGISTRY_KEY] = registry

    app.router.add_get("/health", handle_health)
    app.add_routes(bot_routes)
    app.add_routes(admin_routes)
    return app


async def handle_health(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    return web.json_response({"status": "ok", "running": len(registry.running_ids())})


class ApiServer:
    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000):
        self.app = app
        self.host = host
        self.port = port
        self.runner = None

    async def start(self):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("HTTP server listening on %s:%s", self.host, self.port)

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()
            logger.info("HTTP server stopped")

"""
fleet/entry.py
--------------
Bootstrap: load settings, open the store, start every enabled bot and serve
the management API until SIGINT/SIGTERM.
Keep this file tiny: all heavy logic lives in the registry or the routes.
"""
from __future__ import annotations

import asyncio
import logging
import signal

from fleet.config import Settings
from fleet.db import Database
from fleet.logger import configure_logging
from fleet.registry import BotRegistry
from fleet.server import ApiServer, create_app

logger = logging.getLogger(__name__)


async def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)

    db = Database(settings.DB_PATH)
    await db.init()
    registry = BotRegistry(db)
    server = ApiServer(create_app(settings, db, registry), settings.HOST, settings.PORT)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    try:
        await registry.reconcile_all(await db.list_bots(enabled=True))
        await server.start()
        await stop.wait()
    finally:
        await server.stop()
        await registry.stop_all()
        await db.close()
        logger.info("Fleet stopped")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()

"""Entry point for starting the raidbot service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import sys

import uvicorn

from . import log_config
from .config import ensure_config
from .db.session import init_db
from .discordbot.bot import create_bot
from .engine import RaidEngine
from .gateway import DiscordGateway
from .http.api import create_app
from .lifecycle import raid_lifecycle_sweeper
from .registry import RaidRegistry
from .store import RaidStore
from .venues import load_venues


async def main_async() -> None:
    parser = argparse.ArgumentParser(description="Start the raidbot service")
    parser.add_argument(
        "--reconfigure",
        action="store_true",
        help="Force interactive configuration prompts",
    )
    args = parser.parse_args()

    log_config.setup_logging()
    cfg = await ensure_config(force_reconfigure=args.reconfigure)

    db_url = cfg.database.url
    masked_url = re.sub(r":[^:@/]+@", ":***@", db_url)
    logging.info("Initialising database at %s", masked_url)
    try:
        await init_db(db_url)
    except Exception:
        logging.exception("Database initialization failed")
        sys.exit(1)

    registry = RaidRegistry(RaidStore())
    await registry.load()

    bot = create_bot(cfg)
    engine = RaidEngine(
        registry,
        DiscordGateway(bot, cfg.guild_id),
        load_venues(cfg.venues_path),
        cfg.raid,
    )
    bot.engine = engine

    logging.info("Starting HTTP API on %s:%s", cfg.server.host, cfg.server.port)
    try:
        app = create_app(engine, cfg.server)
        server = uvicorn.Server(
            uvicorn.Config(app, host=cfg.server.host, port=cfg.server.port, log_level="info")
        )
        await asyncio.gather(
            server.serve(),
            bot.start(cfg.discord_token),
            raid_lifecycle_sweeper(engine),
        )
    except Exception:
        logging.exception("Failed to start services")
        sys.exit(1)
    finally:
        await engine.effects.drain()


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()

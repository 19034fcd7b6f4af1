from __future__ import annotations

import pkgutil
import logging
from pathlib import Path

import discord
from discord.ext import commands

from ..config import AppConfig
from ..engine import RaidEngine
from ..gateway import GuildDecorations

logger = logging.getLogger(__name__)


class RaidBot(commands.Bot):
    engine: RaidEngine

    def __init__(
        self, cfg: AppConfig, intents: discord.Intents | None = None
    ) -> None:
        if intents is None:
            intents = discord.Intents.default()
            intents.message_content = True
            intents.members = True
            intents.dm_messages = True
        super().__init__(command_prefix="!", intents=intents)
        self.cfg = cfg

    async def setup_hook(self) -> None:
        base = Path(__file__).parent / "cogs"
        for mod in pkgutil.iter_modules([str(base)]):
            module_path = f"{__package__}.cogs.{mod.name}"
            try:
                await self.load_extension(module_path)
            except Exception:
                logger.exception("Failed to load extension %s", module_path)
            else:
                logger.info("Loaded extension %s", module_path)

        try:
            if self.cfg.guild_id:
                guild = discord.Object(id=self.cfg.guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                logger.info(
                    "Synced %d command(s) to guild %s", len(synced), self.cfg.guild_id
                )
            else:
                synced = await self.tree.sync()
                logger.info("Synced %d global command(s)", len(synced))
        except Exception:
            logger.exception("Failed to sync application commands")

    async def on_ready(self) -> None:
        guild = self.get_guild(self.cfg.guild_id) if self.cfg.guild_id else None
        if guild is None:
            logger.warning("Configured guild %s is not available", self.cfg.guild_id)
            return
        self.engine.decorations = GuildDecorations.from_guild(guild)
        logger.info("Raid decorations loaded for guild %s", guild.id)


def create_bot(cfg: AppConfig, intents: discord.Intents | None = None) -> RaidBot:
    return RaidBot(cfg, intents=intents)

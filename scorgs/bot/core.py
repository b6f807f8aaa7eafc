"""
scorgs.bot.core — Bot Instance & Cog Loader
============================================

Defines :class:`ScorgsBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog can reach them via ``self.bot.cfg`` / ``self.bot.engine``.
2. Loads every Cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production, controlled by the ``DEV_GUILD_ID`` env var).
4. Refreshes stored name/icon for every linked guild it can see.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from scorgs.config import ScorgsConfig
from scorgs.database.engine import run_db
from scorgs.services.discord_service import refresh_guild

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "scorgs.bot.cogs.integration",
    "scorgs.bot.cogs.tasks",
]


def guild_icon_url(guild: discord.Guild) -> str | None:
    return guild.icon.url if guild.icon else None


class ScorgsBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`ScorgsConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: ScorgsConfig, engine: Engine) -> None:
        # Guild events only; no privileged intents are needed.
        intents = discord.Intents.default()
        intents.message_content = False
        intents.members = False
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.platform_name} Discord integration",
        )
        self.cfg = cfg
        self.engine = engine

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions; a broken Cog is logged, not fatal."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        await self._refresh_known_guilds()

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await super().close()

    async def _refresh_known_guilds(self) -> None:
        """Names and icons may have changed while the bot was offline."""
        refreshed = 0
        for guild in self.guilds:
            if await run_db(refresh_guild, self.engine, str(guild.id), guild.name, guild_icon_url(guild)):
                refreshed += 1
        logger.info("Refreshed %d linked guild(s) of %d visible", refreshed, len(self.guilds))

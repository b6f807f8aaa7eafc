"""
scorgs.bot.cogs.integration — /scorgs slash commands & guild listeners
=======================================================================

- /scorgs connect <spectrum_id> — link this guild to an organization
- /scorgs status — show which organization this guild is linked to
- /scorgs disconnect — remove the link
- /scorgs help — usage summary

The invoking Discord account must belong to a platform user holding the
Discord integration permission in the target organization.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy import Engine

from scorgs.bot.core import guild_icon_url
from scorgs.database.engine import run_db
from scorgs.errors import InvalidInputError, NotFoundError, ScorgsError
from scorgs.services.discord_service import (
    deactivate_guild,
    get_server_for_guild,
    link_server,
    refresh_guild,
    server_status,
    unlink_server,
    user_id_for_discord,
)

if TYPE_CHECKING:
    from scorgs.bot.core import ScorgsBot

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "**SC Orgs commands**\n"
    "`/scorgs connect <spectrum_id>` — link this server to your organization\n"
    "`/scorgs status` — show the current link\n"
    "`/scorgs disconnect` — remove the link\n"
    "You need a linked SC Orgs account and the Discord integration permission."
)


# ---------------------------------------------------------------------------
# Sync helpers (run via run_db)
# ---------------------------------------------------------------------------
def _platform_user(engine: Engine, discord_id: int | str) -> str:
    user_id = user_id_for_discord(engine, str(discord_id))
    if user_id is None:
        raise InvalidInputError("Your Discord account is not linked to SC Orgs. Log in on the website first.")
    return user_id


def connect_guild(
    engine: Engine,
    discord_user_id: int | str,
    spectrum_id: str,
    *,
    guild_id: int | str,
    guild_name: str,
    guild_icon_url: str | None = None,
) -> dict:
    user_id = _platform_user(engine, discord_user_id)
    return link_server(
        engine, spectrum_id.strip().upper(), user_id,
        guild_id=str(guild_id), guild_name=guild_name, guild_icon_url=guild_icon_url,
    )


def disconnect_guild(engine: Engine, discord_user_id: int | str, guild_id: int | str) -> dict:
    user_id = _platform_user(engine, discord_user_id)
    linked = get_server_for_guild(engine, str(guild_id))
    if linked is None:
        raise NotFoundError("This server is not linked to any organization")
    unlink_server(engine, linked["rsi_org_id"], user_id)
    return linked


def format_status(status: dict) -> str:
    if not status["connected"]:
        return "This server is not linked. Use `/scorgs connect <spectrum_id>`."
    lines = [
        f"Linked to **{status['organization_name']}** (`{status['rsi_org_id']}`)",
        f"Auto-create events: {'on' if status['auto_create_events'] else 'off'}",
    ]
    if status.get("announcement_channel_id"):
        lines.append(f"Announcements: <#{status['announcement_channel_id']}>")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Cog
# ---------------------------------------------------------------------------
@app_commands.guild_only()
class Integration(commands.GroupCog, group_name="scorgs", group_description="SC Orgs integration"):
    """Links Discord guilds to organizations."""

    def __init__(self, bot: ScorgsBot) -> None:
        self.bot = bot
        super().__init__()

    @app_commands.command(name="connect", description="Link this server to an organization.")
    @app_commands.describe(spectrum_id="The organization's RSI Spectrum ID")
    async def connect(self, interaction: discord.Interaction, spectrum_id: str) -> None:
        guild = interaction.guild
        assert guild is not None
        try:
            linked = await run_db(
                connect_guild,
                self.bot.engine,
                interaction.user.id,
                spectrum_id,
                guild_id=guild.id,
                guild_name=guild.name,
                guild_icon_url=guild_icon_url(guild),
            )
        except ScorgsError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return

        logger.info("Guild %s linked to %s via /scorgs connect", guild.id, linked["rsi_org_id"])
        await interaction.response.send_message(
            f"✅ Linked to **{linked['organization_name']}** (`{linked['rsi_org_id']}`).",
            ephemeral=True,
        )

    @app_commands.command(name="status", description="Show this server's organization link.")
    async def status(self, interaction: discord.Interaction) -> None:
        status = await run_db(server_status, self.bot.engine, str(interaction.guild_id))
        await interaction.response.send_message(format_status(status), ephemeral=True)

    @app_commands.command(name="disconnect", description="Remove this server's organization link.")
    async def disconnect(self, interaction: discord.Interaction) -> None:
        try:
            linked = await run_db(
                disconnect_guild, self.bot.engine, interaction.user.id, interaction.guild_id,
            )
        except ScorgsError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Disconnected from **{linked['organization_name']}**.", ephemeral=True,
        )

    @app_commands.command(name="help", description="How to use the SC Orgs bot.")
    async def help(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(HELP_TEXT, ephemeral=True)

    # -------------------------------------------------------------------
    # Guild lifecycle
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            await run_db(deactivate_guild, self.bot.engine, str(guild.id))
        except Exception:
            logger.exception("Failed to deactivate link for guild %s", guild.id)

    @commands.Cog.listener()
    async def on_guild_update(self, before: discord.Guild, after: discord.Guild) -> None:
        if before.name == after.name and before.icon == after.icon:
            return
        try:
            await run_db(refresh_guild, self.bot.engine, str(after.id), after.name, guild_icon_url(after))
        except Exception:
            logger.exception("Failed to refresh guild %s", after.id)


async def setup(bot: ScorgsBot) -> None:
    await bot.add_cog(Integration(bot))

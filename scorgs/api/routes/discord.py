"""
scorgs.api.routes.discord — Discord server links & event sync
==============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from scorgs.api.deps import (
    get_discord_client,
    get_engine,
    get_member_org,
    require_org_permission,
)
from scorgs.api.rate_limit import rate_limited_user
from scorgs.clients.discord_api import DiscordRestClient
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import discord_service, discord_sync

router = APIRouter(tags=["discord"])

_integration_guard = require_org_permission(
    Permission.MANAGE_INTEGRATIONS, Permission.UPDATE_DISCORD_INTEGRATION,
)


class ServerLink(BaseModel):
    guild_id: str
    guild_name: str
    guild_icon_url: str | None = None


class ServerSettings(BaseModel):
    auto_create_events: bool | None = None
    announcement_channel_id: str | None = None


@router.get("/organizations/{rsi_org_id}/discord")
def get_link(org: Organization = Depends(get_member_org), engine=Depends(get_engine)):
    server = discord_service.get_server_for_org(engine, org.id)
    return {"connected": server is not None, "server": server}


@router.post("/organizations/{rsi_org_id}/discord", status_code=201)
def link_server(
    rsi_org_id: str,
    body: ServerLink,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return discord_service.link_server(
        engine, rsi_org_id, user["sub"],
        guild_id=body.guild_id, guild_name=body.guild_name, guild_icon_url=body.guild_icon_url,
    )


@router.delete("/organizations/{rsi_org_id}/discord", status_code=204)
def unlink_server(rsi_org_id: str, user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    discord_service.unlink_server(engine, rsi_org_id, user["sub"])
    return None


@router.patch("/organizations/{rsi_org_id}/discord/settings")
def update_settings(
    rsi_org_id: str,
    body: ServerSettings,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return discord_service.update_server_settings(
        engine, rsi_org_id, user["sub"], **body.model_dump(exclude_unset=True),
    )


@router.get("/organizations/{rsi_org_id}/discord/sync")
def sync_stats(org: Organization = Depends(_integration_guard), engine=Depends(get_engine)):
    return discord_sync.sync_stats(engine, org.id)


@router.post("/organizations/{rsi_org_id}/discord/sync")
async def sync_pending(
    org: Organization = Depends(_integration_guard),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    discord: DiscordRestClient | None = Depends(get_discord_client),
):
    if discord is None:
        raise HTTPException(503, "Discord bot token is not configured")
    return await discord_sync.sync_pending_for_organization(engine, discord, org.id)


@router.get("/discord/guilds/{guild_id}")
def guild_status(guild_id: str, engine=Depends(get_engine)):
    return discord_service.server_status(engine, guild_id)

"""
scorgs.services.discord_service — Discord guild ↔ organization links
=====================================================================

An organization links at most one Discord guild, and a guild belongs to at
most one organization.  Unlinking deactivates the row (so re-linking later
keeps its id and settings) and clears
``organizations.discord_integration_enabled``.

Linking is normally driven from Discord itself (``/scorgs connect``), but
the same functions back the REST endpoints.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.constants import Permission
from scorgs.database.models import AuditActionType, DiscordServer, Organization, User
from scorgs.errors import ConflictError, NotFoundError
from scorgs.services.common import find_organization_by_rsi_id, iso, log_action, row_to_dict
from scorgs.services.role_service import require_permission

logger = logging.getLogger(__name__)


def server_to_dict(server: DiscordServer, org: Organization | None = None) -> dict:
    data = {
        "id": server.id,
        "organization_id": server.organization_id,
        "discord_guild_id": server.discord_guild_id,
        "guild_name": server.guild_name,
        "guild_icon_url": server.guild_icon_url,
        "is_active": server.is_active,
        "auto_create_events": server.auto_create_events,
        "announcement_channel_id": server.announcement_channel_id,
        "created_at": iso(server.created_at),
        "updated_at": iso(server.updated_at),
    }
    if org is not None:
        data["rsi_org_id"] = org.rsi_org_id
        data["organization_name"] = org.name
    return data


def _require_org(session: Session, rsi_org_id: str) -> Organization:
    org = find_organization_by_rsi_id(session, rsi_org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


def link_server(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    *,
    guild_id: str,
    guild_name: str,
    guild_icon_url: str | None = None,
) -> dict:
    """Attach *guild_id* to the organization, or refresh an existing link."""
    guild_id = str(guild_id)
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        require_permission(
            session, org, user_id,
            Permission.UPDATE_DISCORD_INTEGRATION, Permission.MANAGE_INTEGRATIONS,
        )

        by_guild = session.scalar(
            select(DiscordServer).where(DiscordServer.discord_guild_id == guild_id)
        )
        if by_guild is not None and by_guild.organization_id != org.id:
            if by_guild.is_active:
                raise ConflictError("This Discord server is already linked to another organization")
            session.delete(by_guild)
            session.flush()

        server = session.scalar(
            select(DiscordServer).where(DiscordServer.organization_id == org.id)
        )
        before = row_to_dict(server)
        if server is None:
            server = DiscordServer(organization_id=org.id, discord_guild_id=guild_id, guild_name=guild_name)
            session.add(server)
        server.discord_guild_id = guild_id
        server.guild_name = guild_name
        server.guild_icon_url = guild_icon_url
        server.is_active = True
        org.discord_integration_enabled = True
        session.flush()

        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.UPDATE if before else AuditActionType.CREATE,
            target_table="discord_servers",
            target_id=server.id,
            before=before,
            after=row_to_dict(server),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Guild %s (%s) linked to %s by %s", guild_id, guild_name, org.rsi_org_id, user_id)
        return server_to_dict(server, org)


def unlink_server(engine: Engine, rsi_org_id: str, user_id: str) -> None:
    with Session(engine) as session:
        org = _require_org(session, rsi_org_id)
        require_permission(
            session, org, user_id,
            Permission.UPDATE_DISCORD_INTEGRATION, Permission.MANAGE_INTEGRATIONS,
        )
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.organization_id == org.id,
                DiscordServer.is_active.is_(True),
            )
        )
        if server is None:
            raise NotFoundError("No Discord server is linked to this organization")

        before = row_to_dict(server)
        server.is_active = False
        org.discord_integration_enabled = False
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.UPDATE,
            target_table="discord_servers",
            target_id=server.id,
            before=before,
            after=row_to_dict(server),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Guild %s unlinked from %s", server.discord_guild_id, org.rsi_org_id)


def get_server_for_org(engine: Engine, organization_id: str) -> dict | None:
    with Session(engine) as session:
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.organization_id == organization_id,
                DiscordServer.is_active.is_(True),
            )
        )
        return server_to_dict(server) if server else None


def get_server_for_guild(engine: Engine, guild_id: str) -> dict | None:
    with Session(engine) as session:
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.discord_guild_id == str(guild_id),
                DiscordServer.is_active.is_(True),
            )
        )
        if server is None:
            return None
        return server_to_dict(server, session.get(Organization, server.organization_id))


def server_status(engine: Engine, guild_id: str) -> dict:
    """What ``/scorgs status`` reports for a guild."""
    linked = get_server_for_guild(engine, guild_id)
    if linked is None:
        return {"connected": False, "guild_id": str(guild_id)}
    return {
        "connected": True,
        "guild_id": str(guild_id),
        "rsi_org_id": linked.get("rsi_org_id"),
        "organization_name": linked.get("organization_name"),
        "auto_create_events": linked["auto_create_events"],
        "announcement_channel_id": linked["announcement_channel_id"],
        "linked_at": linked["created_at"],
    }


def update_server_settings(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    *,
    auto_create_events: bool | None = None,
    announcement_channel_id: str | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        require_permission(
            session, org, user_id,
            Permission.UPDATE_DISCORD_INTEGRATION, Permission.MANAGE_INTEGRATIONS,
        )
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.organization_id == org.id,
                DiscordServer.is_active.is_(True),
            )
        )
        if server is None:
            raise NotFoundError("No Discord server is linked to this organization")

        before = row_to_dict(server)
        if auto_create_events is not None:
            server.auto_create_events = auto_create_events
        if announcement_channel_id is not None:
            server.announcement_channel_id = announcement_channel_id or None
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.UPDATE,
            target_table="discord_servers",
            target_id=server.id,
            before=before,
            after=row_to_dict(server),
            organization_id=org.id,
        )
        session.commit()
        return server_to_dict(server, org)


# ---------------------------------------------------------------------------
# Guild lifecycle (bot listeners)
# ---------------------------------------------------------------------------
def deactivate_guild(engine: Engine, guild_id: str) -> bool:
    """Bot was removed from the guild; returns whether a link was active."""
    with Session(engine) as session:
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.discord_guild_id == str(guild_id),
                DiscordServer.is_active.is_(True),
            )
        )
        if server is None:
            return False
        server.is_active = False
        org = session.get(Organization, server.organization_id)
        if org is not None:
            org.discord_integration_enabled = False
        session.commit()
        logger.info("Guild %s removed the bot; link deactivated", guild_id)
        return True


def refresh_guild(engine: Engine, guild_id: str, guild_name: str, guild_icon_url: str | None) -> bool:
    with Session(engine) as session:
        server = session.scalar(
            select(DiscordServer).where(DiscordServer.discord_guild_id == str(guild_id))
        )
        if server is None:
            return False
        server.guild_name = guild_name
        server.guild_icon_url = guild_icon_url
        session.commit()
        return True


def user_id_for_discord(engine: Engine, discord_id: str) -> str | None:
    with Session(engine) as session:
        return session.scalar(select(User.id).where(User.discord_id == str(discord_id)))

"""
scorgs.services.discord_sync — Event → Discord scheduled-event sync
====================================================================

Mirrors platform events into the linked guild's scheduled events.  Each
event has at most one ``discord_events`` row recording the Discord id and
the last sync outcome (``pending`` → ``synced`` | ``failed``; ``cancelled``
once the Discord side has been deleted).

The HTTP calls are async and the DB work is sync, so every DB step goes
through :func:`scorgs.database.engine.run_db`.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from scorgs.clients.discord_api import DiscordAPIError, DiscordRestClient
from scorgs.database.engine import run_db
from scorgs.database.models import DiscordEvent, DiscordServer, Event, SyncStatus, utcnow
from scorgs.services.common import as_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sync DB steps
# ---------------------------------------------------------------------------
def _load_sync_target(engine: Engine, event_id: str) -> dict | None:
    """Event fields, linked guild and any existing Discord id."""
    with Session(engine) as session:
        event = session.get(Event, event_id)
        if event is None or event.organization_id is None:
            return None
        server = session.scalar(
            select(DiscordServer).where(
                DiscordServer.organization_id == event.organization_id,
                DiscordServer.is_active.is_(True),
            )
        )
        if server is None:
            return None
        record = session.scalar(select(DiscordEvent).where(DiscordEvent.event_id == event_id))
        return {
            "event_id": event.id,
            "is_active": event.is_active,
            "title": event.title,
            "description": event.description,
            "location": event.location,
            "start_time": as_utc(event.start_time),
            "end_time": as_utc(event.end_time),
            "guild_id": server.discord_guild_id,
            "discord_event_id": record.discord_event_id if record else None,
        }


def _record_result(
    engine: Engine,
    event_id: str,
    guild_id: str,
    *,
    status: str,
    discord_event_id: str | None = None,
    error: str | None = None,
) -> None:
    with Session(engine) as session:
        record = session.scalar(select(DiscordEvent).where(DiscordEvent.event_id == event_id))
        if record is None:
            record = DiscordEvent(event_id=event_id, discord_guild_id=guild_id)
            session.add(record)
        record.discord_guild_id = guild_id
        record.sync_status = status
        record.sync_error = error
        if discord_event_id is not None:
            record.discord_event_id = discord_event_id
        if status == SyncStatus.SYNCED:
            record.last_synced_at = utcnow()
        session.commit()


def _pending_event_ids(engine: Engine, organization_id: str) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(
            select(Event.id)
            .join(DiscordEvent, DiscordEvent.event_id == Event.id, isouter=True)
            .where(
                Event.organization_id == organization_id,
                Event.is_active.is_(True),
                Event.start_time > utcnow(),
                (DiscordEvent.id.is_(None))
                | (DiscordEvent.sync_status.in_([SyncStatus.PENDING, SyncStatus.FAILED])),
            )
        ))


def sync_stats(engine: Engine, organization_id: str | None = None) -> dict:
    """Row counts per sync status (optionally for one organization)."""
    with Session(engine) as session:
        stmt = select(DiscordEvent.sync_status, func.count(DiscordEvent.id))
        if organization_id is not None:
            stmt = stmt.join(Event, Event.id == DiscordEvent.event_id).where(
                Event.organization_id == organization_id
            )
        rows = session.execute(stmt.group_by(DiscordEvent.sync_status)).all()
    counts = {str(s): 0 for s in SyncStatus}
    for status, count in rows:
        counts[str(status)] = count
    counts["total"] = sum(counts[str(s)] for s in SyncStatus)
    return counts


# ---------------------------------------------------------------------------
# Async operations
# ---------------------------------------------------------------------------
async def sync_event(engine: Engine, client: DiscordRestClient, event_id: str) -> bool:
    """Create or update the Discord scheduled event for *event_id*.

    Returns ``True`` on success.  Failures are recorded on the row, never
    raised, so a Discord outage cannot break event creation.
    """
    target = await run_db(_load_sync_target, engine, event_id)
    if target is None:
        logger.debug("Event %s has no active Discord link; skipping sync", event_id)
        return False
    if not target["is_active"]:
        return await cancel_event_sync(engine, client, event_id)

    guild_id = target["guild_id"]
    fields = {
        "title": target["title"],
        "start_time": target["start_time"],
        "end_time": target["end_time"],
        "description": target["description"],
        "location": target["location"],
    }
    try:
        if target["discord_event_id"]:
            result = await client.update_scheduled_event(guild_id, target["discord_event_id"], **fields)
        else:
            result = await client.create_scheduled_event(guild_id, **fields)
    except DiscordAPIError as exc:
        logger.error("Discord sync failed for event %s: %s", event_id, exc)
        await run_db(
            _record_result, engine, event_id, guild_id,
            status=SyncStatus.FAILED, error=str(exc),
        )
        return False

    await run_db(
        _record_result, engine, event_id, guild_id,
        status=SyncStatus.SYNCED, discord_event_id=str(result["id"]),
    )
    logger.info("Event %s synced to guild %s as %s", event_id, guild_id, result["id"])
    return True


async def cancel_event_sync(engine: Engine, client: DiscordRestClient, event_id: str) -> bool:
    """Delete the Discord scheduled event mirrored from *event_id*."""
    target = await run_db(_load_sync_target, engine, event_id)
    if target is None or not target["discord_event_id"]:
        return False
    guild_id = target["guild_id"]
    try:
        await client.delete_scheduled_event(guild_id, target["discord_event_id"])
    except DiscordAPIError as exc:
        if exc.status_code != 404:
            logger.error("Discord cancel failed for event %s: %s", event_id, exc)
            await run_db(
                _record_result, engine, event_id, guild_id,
                status=SyncStatus.FAILED, error=str(exc),
            )
            return False
    await run_db(_record_result, engine, event_id, guild_id, status=SyncStatus.CANCELLED)
    logger.info("Discord event for %s cancelled", event_id)
    return True


async def sync_pending_for_organization(
    engine: Engine,
    client: DiscordRestClient,
    organization_id: str,
) -> dict:
    """Retry every upcoming event not yet synced; returns counts."""
    event_ids = await run_db(_pending_event_ids, engine, organization_id)
    synced = 0
    for event_id in event_ids:
        if await sync_event(engine, client, event_id):
            synced += 1
    return {"attempted": len(event_ids), "synced": synced, "failed": len(event_ids) - synced}


def _is_mirrored(engine: Engine, event_id: str) -> bool:
    with Session(engine) as session:
        status = session.scalar(select(DiscordEvent.sync_status).where(DiscordEvent.event_id == event_id))
    return status is not None and status != SyncStatus.CANCELLED


async def resync_if_mirrored(engine: Engine, client: DiscordRestClient, event_id: str) -> bool:
    """Push an edit or cancellation to Discord for events already mirrored there."""
    if not await run_db(_is_mirrored, engine, event_id):
        return False
    return await sync_event(engine, client, event_id)

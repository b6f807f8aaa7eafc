"""
scorgs.services.event_service — Events & registrations
=======================================================

Events are either org-scoped (``organization_id`` set, gated by the org's
event permissions) or community events anyone can create.  Cancelling an
event is a soft delete.

When an org-scoped event is created and the organization has an active
Discord link with ``auto_create_events`` on, a ``pending`` row is written to
``discord_events`` and the caller is told to run the async sync
(:mod:`scorgs.services.discord_sync`).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from scorgs.constants import Permission
from scorgs.database.models import (
    AuditActionType,
    DiscordEvent,
    DiscordServer,
    Event,
    EventRegistration,
    Organization,
    OrganizationMember,
    RegistrationStatus,
    SyncStatus,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import apply_updates, as_utc, get_organization, iso, log_action, paginate, row_to_dict
from scorgs.services.event_reminder_service import reset_reminders
from scorgs.services.notification_service import notify
from scorgs.services.role_service import active_member, has_permission, member_ids, require_permission

logger = logging.getLogger(__name__)

ACTIVE_REGISTRATION = (
    RegistrationStatus.REGISTERED,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.ATTENDED,
)
FROZEN_KEYS = ("id", "organization_id", "created_by", "is_active")


def event_to_dict(event: Event, registered: int | None = None) -> dict:
    return {
        "id": event.id,
        "organization_id": event.organization_id,
        "created_by": event.created_by,
        "title": event.title,
        "description": event.description,
        "start_time": iso(event.start_time),
        "end_time": iso(event.end_time),
        "location": event.location,
        "languages": list(event.languages or []),
        "playstyle_tags": list(event.playstyle_tags or []),
        "max_participants": event.max_participants,
        "is_public": event.is_public,
        "is_active": event.is_active,
        "registration_deadline": iso(event.registration_deadline),
        "registered_count": registered,
        "created_at": iso(event.created_at),
        "updated_at": iso(event.updated_at),
    }


def _validate_times(
    start_time: datetime,
    end_time: datetime | None,
    registration_deadline: datetime | None,
    max_participants: int | None,
) -> None:
    start = as_utc(start_time)
    if end_time is not None and as_utc(end_time) <= start:
        raise InvalidInputError("End time must be after start time")
    if registration_deadline is not None and as_utc(registration_deadline) > start:
        raise InvalidInputError("Registration deadline must be before the event starts")
    if max_participants is not None and max_participants < 1:
        raise InvalidInputError("max_participants must be at least 1")


def _get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def _require_event_permission(session: Session, event: Event, user_id: str, permission: str) -> None:
    """Creator may always manage; otherwise the org permission is needed."""
    if event.created_by == user_id:
        return
    if event.organization_id is not None:
        org = session.get(Organization, event.organization_id)
        if org is not None and has_permission(session, org, user_id, permission):
            return
    raise PermissionDeniedError("You do not have permission to modify this event")


def registration_count(session: Session, event_id: str) -> int:
    return session.scalar(
        select(func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status != RegistrationStatus.CANCELLED,
        )
    ) or 0


def _registrant_ids(session: Session, event_id: str) -> list[str]:
    return list(session.scalars(
        select(EventRegistration.user_id).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status != RegistrationStatus.CANCELLED,
        )
    ))


def _schedule_discord_sync(session: Session, event: Event) -> bool:
    if event.organization_id is None:
        return False
    server = session.scalar(
        select(DiscordServer).where(
            DiscordServer.organization_id == event.organization_id,
            DiscordServer.is_active.is_(True),
        )
    )
    if server is None or not server.auto_create_events:
        return False
    session.add(DiscordEvent(
        event_id=event.id,
        discord_guild_id=server.discord_guild_id,
        sync_status=SyncStatus.PENDING,
    ))
    return True


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
def create_event(
    engine: Engine,
    user_id: str,
    *,
    title: str,
    start_time: datetime,
    organization_id: str | None = None,
    description: str | None = None,
    end_time: datetime | None = None,
    location: str | None = None,
    languages: list[str] | None = None,
    playstyle_tags: list[str] | None = None,
    max_participants: int | None = None,
    is_public: bool = True,
    registration_deadline: datetime | None = None,
) -> dict:
    """Create an event.  ``result["discord_sync_scheduled"]`` tells the
    caller whether to kick off the Discord sync."""
    _validate_times(start_time, end_time, registration_deadline, max_participants)
    with Session(engine, expire_on_commit=False) as session:
        org = None
        if organization_id is not None:
            org = get_organization(session, organization_id)
            require_permission(session, org, user_id, Permission.CREATE_EVENTS, Permission.MANAGE_EVENTS)

        event = Event(
            organization_id=organization_id,
            created_by=user_id,
            title=title,
            description=description,
            start_time=start_time,
            end_time=end_time,
            location=location,
            languages=list(languages or []),
            playstyle_tags=list(playstyle_tags or []),
            max_participants=max_participants,
            is_public=is_public,
            registration_deadline=registration_deadline,
        )
        session.add(event)
        session.flush()

        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.CREATE,
            target_table="events",
            target_id=event.id,
            before=None,
            after=row_to_dict(event),
            organization_id=organization_id,
        )
        if org is not None:
            notify(
                session,
                entity_type=NT.EVENT_CREATED,
                entity_id=event.id,
                actor_id=user_id,
                notifier_ids=member_ids(session, org.id),
                custom_data={"event_title": event.title, "event_id": event.id,
                             "rsi_org_id": org.rsi_org_id},
            )
        scheduled = _schedule_discord_sync(session, event)
        session.commit()
        logger.info("Event %s (%r) created by %s", event.id, title, user_id)

        result = event_to_dict(event, registered=0)
        result["discord_sync_scheduled"] = scheduled
        return result


def update_event(engine: Engine, event_id: str, user_id: str, updates: dict[str, Any]) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        event = _get_event(session, event_id)
        if not event.is_active:
            raise InvalidInputError("Cancelled events cannot be edited")
        _require_event_permission(session, event, user_id, Permission.UPDATE_EVENTS)

        _validate_times(
            updates.get("start_time", event.start_time),
            updates.get("end_time", event.end_time),
            updates.get("registration_deadline", event.registration_deadline),
            updates.get("max_participants", event.max_participants),
        )

        before = row_to_dict(event)
        changed = apply_updates(event, updates, frozen_keys=FROZEN_KEYS)
        if changed:
            session.flush()
            if "start_time" in changed:
                reset_reminders(session, event.id)
            log_action(
                session,
                actor_id=user_id,
                action_type=AuditActionType.UPDATE,
                target_table="events",
                target_id=event.id,
                before=before,
                after=row_to_dict(event),
                organization_id=event.organization_id,
            )
            notify(
                session,
                entity_type=NT.EVENT_UPDATED,
                entity_id=event.id,
                actor_id=user_id,
                notifier_ids=_registrant_ids(session, event.id),
                custom_data={"event_title": event.title, "event_id": event.id},
            )
            session.commit()
            logger.info("Event %s updated by %s: %s", event.id, user_id, changed)
        return event_to_dict(event, registered=registration_count(session, event.id))


def cancel_event(engine: Engine, event_id: str, user_id: str) -> None:
    with Session(engine) as session:
        event = _get_event(session, event_id)
        _require_event_permission(session, event, user_id, Permission.DELETE_EVENTS)
        if not event.is_active:
            return

        before = row_to_dict(event)
        event.is_active = False
        session.flush()
        reset_reminders(session, event.id)
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.DELETE,
            target_table="events",
            target_id=event.id,
            before=before,
            after=row_to_dict(event),
            organization_id=event.organization_id,
        )
        notify(
            session,
            entity_type=NT.EVENT_DELETED,
            entity_id=event.id,
            actor_id=user_id,
            notifier_ids=_registrant_ids(session, event.id),
            custom_data={"event_title": event.title, "event_id": event.id},
        )
        session.commit()
        logger.info("Event %s cancelled by %s", event.id, user_id)


def can_view_event(session: Session, event: Event, viewer_id: str | None) -> bool:
    """Private events are visible to their creator and active org members."""
    if event.is_public:
        return True
    if viewer_id is None:
        return False
    if event.created_by == viewer_id:
        return True
    return event.organization_id is not None and active_member(
        session, event.organization_id, viewer_id
    ) is not None


def get_event(engine: Engine, event_id: str, viewer_id: str | None = None) -> dict:
    with Session(engine) as session:
        event = _get_event(session, event_id)
        if not can_view_event(session, event, viewer_id):
            raise NotFoundError("Event not found")
        return event_to_dict(event, registered=registration_count(session, event.id))


def list_events(
    engine: Engine,
    *,
    organization_id: str | None = None,
    upcoming: bool = False,
    language: str | None = None,
    tag: str | None = None,
    public_only: bool = True,
    viewer_id: str | None = None,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> dict:
    """Active events, soonest first.  With *public_only*, private events are
    still listed for organizations *viewer_id* is an active member of."""
    now = now or utcnow()
    offset, limit = paginate(page, limit)
    with Session(engine) as session:
        stmt = select(Event).where(Event.is_active.is_(True))
        if organization_id is not None:
            stmt = stmt.where(Event.organization_id == organization_id)
        if public_only:
            visible = Event.is_public.is_(True)
            if viewer_id:
                visible = visible | Event.organization_id.in_(
                    select(OrganizationMember.organization_id).where(
                        OrganizationMember.user_id == viewer_id,
                        OrganizationMember.is_active.is_(True),
                    )
                )
            stmt = stmt.where(visible)
        if upcoming:
            stmt = stmt.where(Event.start_time >= now)
        events = session.scalars(stmt.order_by(Event.start_time.asc(), Event.id)).all()

        matched = [
            e for e in events
            if (language is None or language in (e.languages or []))
            and (tag is None or tag in (e.playstyle_tags or []))
        ]
        window = matched[offset:offset + limit]
        return {
            "events": [event_to_dict(e, registered=registration_count(session, e.id)) for e in window],
            "total": len(matched),
            "page": offset // limit + 1,
            "limit": limit,
        }


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------
def register_for_event(
    engine: Engine,
    event_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        event = _get_event(session, event_id)
        if not event.is_active:
            raise InvalidInputError("Event is not active")
        if event.registration_deadline is not None and now > as_utc(event.registration_deadline):
            raise InvalidInputError("Registration deadline has passed")
        if now >= as_utc(event.start_time):
            raise InvalidInputError("Event has already started")

        existing = session.scalar(
            select(EventRegistration).where(
                EventRegistration.event_id == event.id,
                EventRegistration.user_id == user_id,
            )
        )
        if existing is not None and existing.status != RegistrationStatus.CANCELLED:
            raise ConflictError("You are already registered for this event")

        if event.max_participants is not None and registration_count(session, event.id) >= event.max_participants:
            raise InvalidInputError("Event is full")

        if existing is not None:
            existing.status = RegistrationStatus.REGISTERED
            existing.registered_at = now
            registration = existing
        else:
            registration = EventRegistration(event_id=event.id, user_id=user_id, registered_at=now)
            session.add(registration)
        session.flush()

        notify(
            session,
            entity_type=NT.EVENT_REGISTERED,
            entity_id=event.id,
            actor_id=user_id,
            notifier_ids=[event.created_by],
            custom_data={"event_title": event.title, "event_id": event.id},
        )
        session.commit()
        logger.info("User %s registered for event %s", user_id, event.id)
        return {
            "id": registration.id,
            "event_id": event.id,
            "user_id": user_id,
            "status": str(registration.status),
            "registered_at": iso(registration.registered_at),
        }


def unregister_from_event(engine: Engine, event_id: str, user_id: str) -> None:
    with Session(engine) as session:
        event = _get_event(session, event_id)
        registration = session.scalar(
            select(EventRegistration).where(
                EventRegistration.event_id == event.id,
                EventRegistration.user_id == user_id,
                EventRegistration.status != RegistrationStatus.CANCELLED,
            )
        )
        if registration is None:
            raise NotFoundError("You are not registered for this event")
        registration.status = RegistrationStatus.CANCELLED
        notify(
            session,
            entity_type=NT.EVENT_UNREGISTERED,
            entity_id=event.id,
            actor_id=user_id,
            notifier_ids=[event.created_by],
            custom_data={"event_title": event.title, "event_id": event.id},
        )
        session.commit()


def mark_attendance(engine: Engine, event_id: str, target_user_id: str, actor_id: str) -> dict:
    with Session(engine) as session:
        event = _get_event(session, event_id)
        _require_event_permission(session, event, actor_id, Permission.UPDATE_EVENTS)
        registration = session.scalar(
            select(EventRegistration).where(
                EventRegistration.event_id == event.id,
                EventRegistration.user_id == target_user_id,
            )
        )
        if registration is None or registration.status == RegistrationStatus.CANCELLED:
            raise NotFoundError("User is not registered for this event")
        registration.status = RegistrationStatus.ATTENDED
        session.commit()
        return {"event_id": event.id, "user_id": target_user_id, "status": str(registration.status)}


def list_registrations(engine: Engine, event_id: str) -> dict:
    with Session(engine) as session:
        event = _get_event(session, event_id)
        rows = session.execute(
            select(EventRegistration, User.username)
            .join(User, User.id == EventRegistration.user_id)
            .where(EventRegistration.event_id == event.id)
            .order_by(EventRegistration.registered_at.asc())
        ).all()

    counts = {str(s): 0 for s in RegistrationStatus}
    registrations = []
    for reg, username in rows:
        counts[str(reg.status)] = counts.get(str(reg.status), 0) + 1
        registrations.append({
            "user_id": reg.user_id,
            "username": username,
            "status": str(reg.status),
            "registered_at": iso(reg.registered_at),
        })
    return {
        "registrations": registrations,
        "counts": counts,
        "total_active": sum(counts[str(s)] for s in ACTIVE_REGISTRATION),
        "max_participants": event.max_participants,
    }

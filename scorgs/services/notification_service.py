"""
scorgs.services.notification_service — In-app notifications
=============================================================

Storage follows the object / change / recipient split:

* ``notification_objects`` — *what* happened (entity type + id, plus a
  ``custom_data`` blob with the names/titles needed to render it later)
* ``notification_changes`` — *who* did it (the actor)
* ``notifications`` — *who is told*, one row per recipient with read state

Services call :func:`notify` inside their own session so a notification
is only written when the change that caused it commits.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from scorgs.database.models import (
    Notification,
    NotificationChange,
    NotificationObject,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import NotFoundError
from scorgs.services.common import iso, paginate

logger = logging.getLogger(__name__)

# Actor id for confirmations the platform sends to the user who acted.
SYSTEM_ACTOR_ID = "system"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------
def notification_message(
    entity_type: int,
    data: dict[str, Any] | None,
    actor_name: str = "Someone",
) -> dict[str, str]:
    """Return ``{"title", "message"}`` for a notification.

    ``data["title"]`` / ``data["message"]`` override the template, which is
    how HR notifications carry bespoke wording.
    """
    data = data or {}
    name = data.get("name") or data.get("organization_name") or "Unknown"
    title = data.get("event_title") or data.get("title") or "Unknown"

    templates: dict[int, tuple[str, str]] = {
        NT.ORGANIZATION_CREATED: ("New Organization Created",
                                  f"{actor_name} created a new organization: {name}"),
        NT.ORGANIZATION_UPDATED: ("Organization Updated",
                                  f"{actor_name} updated the organization: {name}"),
        NT.ORGANIZATION_DELETED: ("Organization Deleted",
                                  f"The organization {name} has been deleted"),
        NT.ORGANIZATION_JOINED: ("New Member Joined",
                                 f"{actor_name} joined the organization: {name}"),
        NT.ORGANIZATION_LEFT: ("Member Left",
                               f"{actor_name} left the organization: {name}"),
        NT.ORGANIZATION_INVITED: ("Organization Invitation",
                                  f"You have been invited to join: {name}"),
        NT.ORGANIZATION_ROLE_CHANGED: (
            "Role Changed",
            f"Your role in {name} has been changed to {data.get('role') or 'Unknown'}",
        ),
        NT.EVENT_CREATED: ("New Event Created",
                           f"{actor_name} created a new event: {title}"),
        NT.EVENT_UPDATED: ("Event Updated",
                           f"{actor_name} updated the event: {title}"),
        NT.EVENT_DELETED: ("Event Cancelled",
                           f"The event \"{title}\" has been cancelled"),
        NT.EVENT_REGISTERED: ("Event Registration",
                              f"{actor_name} registered for the event: {title}"),
        NT.EVENT_UNREGISTERED: ("Event Registration Cancelled",
                                f"{actor_name} cancelled their registration for: {title}"),
        NT.EVENT_STARTING_SOON: ("Event Starting Soon",
                                 f"The event \"{title}\" is starting soon!"),
        NT.EVENT_REMINDER: ("Event Reminder",
                            f"Reminder: The event \"{title}\" is tomorrow!"),
        NT.COMMENT_CREATED: ("New Comment",
                             f"{actor_name} commented on {name}"),
        NT.COMMENT_UPDATED: ("Comment Edited",
                             f"{actor_name} edited a comment you replied to on {name}"),
        NT.COMMENT_DELETED: ("Comment Removed",
                             f"Your comment on {name} was removed by a moderator"),
        NT.COMMENT_REPLIED: ("New Reply",
                             f"{actor_name} replied to your comment on {name}"),
        NT.COMMENT_VOTED: ("Comment Upvoted",
                           f"{actor_name} upvoted your comment on {name}"),
        NT.USER_VERIFIED: ("Account Verified",
                           "Your Star Citizen account has been verified!"),
        NT.SYSTEM_ANNOUNCEMENT: ("System Announcement",
                                 data.get("message") or "A new system announcement is available."),
        NT.SYSTEM_MAINTENANCE: ("System Maintenance",
                                data.get("message") or "Scheduled maintenance is upcoming."),
        NT.SECURITY_LOGIN: ("Security Alert",
                            f"New login detected from {data.get('location') or 'unknown location'}"),
        NT.HR_APPLICATION_SUBMITTED: ("New Application",
                                      f"{actor_name} applied to join {name}"),
        NT.HR_APPLICATION_STATUS_CHANGED: (
            "Application Updated",
            f"Your application to {name} is now {data.get('status') or 'updated'}",
        ),
        NT.HR_DOCUMENT_REQUIRES_ACKNOWLEDGMENT: (
            "Document Requires Acknowledgment",
            f"Please review and acknowledge \"{data.get('document_title') or 'a document'}\"",
        ),
        NT.HR_ONBOARDING_ASSIGNED: ("Onboarding Assigned",
                                    f"You have new onboarding tasks in {name}"),
    }

    default_title, default_message = templates.get(
        entity_type, ("Notification", f"You have a new notification from {actor_name}")
    )
    return {
        "title": data.get("title") if "message" in data and data.get("title") else default_title,
        "message": data.get("message") or default_message,
    }


def action_url(entity_type: int, data: dict[str, Any] | None) -> str | None:
    """Frontend path a notification links to, or ``None``."""
    data = data or {}
    if entity_type in (NT.ORGANIZATION_CREATED, NT.ORGANIZATION_UPDATED, NT.ORGANIZATION_JOINED,
                       NT.ORGANIZATION_LEFT, NT.ORGANIZATION_ROLE_CHANGED):
        return f"/organizations/{data.get('rsi_org_id') or data.get('organization_id')}"
    if entity_type == NT.ORGANIZATION_INVITED:
        return f"/organizations/{data.get('rsi_org_id') or data.get('organization_id')}/join"
    if entity_type in (NT.EVENT_CREATED, NT.EVENT_UPDATED, NT.EVENT_DELETED, NT.EVENT_REGISTERED,
                       NT.EVENT_STARTING_SOON, NT.EVENT_REMINDER):
        return f"/events/{data.get('event_id')}"
    if entity_type in (NT.COMMENT_CREATED, NT.COMMENT_UPDATED, NT.COMMENT_DELETED,
                       NT.COMMENT_REPLIED, NT.COMMENT_VOTED):
        return f"/organizations/{data.get('rsi_org_id') or data.get('organization_id')}/comments"
    if entity_type == NT.USER_VERIFIED:
        return "/profile"
    if entity_type in (NT.SYSTEM_ANNOUNCEMENT, NT.SYSTEM_MAINTENANCE):
        return "/notifications"
    if entity_type == NT.SECURITY_LOGIN:
        return "/profile/security"
    if entity_type in (NT.HR_APPLICATION_SUBMITTED, NT.HR_APPLICATION_STATUS_CHANGED):
        return f"/organizations/{data.get('rsi_org_id')}/hr/applications"
    if entity_type == NT.HR_DOCUMENT_REQUIRES_ACKNOWLEDGMENT:
        return f"/organizations/{data.get('rsi_org_id')}/hr/documents/{data.get('document_id')}"
    if entity_type == NT.HR_ONBOARDING_ASSIGNED:
        return f"/organizations/{data.get('rsi_org_id')}/hr/onboarding"
    return None


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def notify(
    session: Session,
    *,
    entity_type: int,
    entity_id: str,
    actor_id: str,
    notifier_ids: Iterable[str],
    custom_data: dict[str, Any] | None = None,
) -> NotificationObject | None:
    """Write one object + change and a notification per distinct recipient.

    The actor is never notified about their own action.  Returns ``None``
    (and writes nothing) when nobody is left to notify.
    """
    recipients = list(dict.fromkeys(n for n in notifier_ids if n and n != actor_id))
    if not recipients:
        return None

    obj = NotificationObject(
        entity_type=int(entity_type),
        entity_id=str(entity_id),
        custom_data=custom_data,
    )
    session.add(obj)
    session.flush()
    session.add(NotificationChange(notification_object_id=obj.id, actor_id=actor_id))
    session.add_all(
        Notification(notification_object_id=obj.id, notifier_id=uid) for uid in recipients
    )
    logger.debug(
        "Notification type=%d entity=%s → %d recipient(s)",
        int(entity_type), entity_id, len(recipients),
    )
    return obj


def create_notification(
    engine: Engine,
    *,
    entity_type: int,
    entity_id: str,
    actor_id: str,
    notifier_ids: Iterable[str],
    custom_data: dict[str, Any] | None = None,
) -> str | None:
    """Standalone variant of :func:`notify`; returns the object id."""
    with Session(engine, expire_on_commit=False) as session:
        obj = notify(
            session,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            notifier_ids=notifier_ids,
            custom_data=custom_data,
        )
        session.commit()
        return obj.id if obj else None


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------
def unread_count(engine: Engine, user_id: str) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count(Notification.id)).where(
                Notification.notifier_id == user_id,
                Notification.is_read.is_(False),
            )
        ) or 0


def list_notifications(
    engine: Engine,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
) -> dict:
    """Paginated notifications for *user_id*, newest first."""
    offset, limit = paginate(page, limit)
    with Session(engine) as session:
        base = select(Notification).where(Notification.notifier_id == user_id)
        if unread_only:
            base = base.where(Notification.is_read.is_(False))

        total = session.scalar(
            select(func.count()).select_from(base.subquery())
        ) or 0

        rows = session.execute(
            select(Notification, NotificationObject, NotificationChange.actor_id, User.username)
            .join(NotificationObject, NotificationObject.id == Notification.notification_object_id)
            .outerjoin(
                NotificationChange,
                NotificationChange.notification_object_id == NotificationObject.id,
            )
            .outerjoin(User, User.id == NotificationChange.actor_id)
            .where(Notification.id.in_(select(base.subquery().c.id)))
            .order_by(Notification.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()

        unread = session.scalar(
            select(func.count(Notification.id)).where(
                Notification.notifier_id == user_id,
                Notification.is_read.is_(False),
            )
        ) or 0

    items = []
    for notif, obj, actor_id, actor_name in rows:
        rendered = notification_message(obj.entity_type, obj.custom_data, actor_name or "Someone")
        items.append({
            "id": notif.id,
            "entity_type": obj.entity_type,
            "entity_id": obj.entity_id,
            "title": rendered["title"],
            "message": rendered["message"],
            "action_url": action_url(obj.entity_type, obj.custom_data),
            "actor": {"id": actor_id, "username": actor_name} if actor_id else None,
            "is_read": notif.is_read,
            "read_at": iso(notif.read_at),
            "created_at": iso(notif.created_at),
        })

    page = offset // limit + 1
    return {
        "notifications": items,
        "total": total,
        "page": page,
        "limit": limit,
        "has_more": offset + len(items) < total,
        "unread_count": unread,
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def mark_read(engine: Engine, user_id: str, notification_id: str) -> None:
    with Session(engine) as session:
        notif = session.get(Notification, notification_id)
        if notif is None or notif.notifier_id != user_id:
            raise NotFoundError("Notification not found")
        if not notif.is_read:
            notif.is_read = True
            notif.read_at = utcnow()
        session.commit()


def mark_all_read(engine: Engine, user_id: str) -> int:
    """Mark every unread notification read; returns how many changed."""
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.notifier_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )
        session.commit()
        return result.rowcount or 0


def delete_notification(engine: Engine, user_id: str, notification_id: str) -> None:
    with Session(engine) as session:
        notif = session.get(Notification, notification_id)
        if notif is None or notif.notifier_id != user_id:
            raise NotFoundError("Notification not found")
        session.delete(notif)
        session.commit()

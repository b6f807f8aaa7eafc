"""
scorgs.services.event_reminder_service — Reminders for registered attendees
============================================================================

A periodic sweep (the bot's task loop calls :func:`send_event_reminders`)
notifies everyone holding a live registration as an event approaches:

========  ======================  ===================
Stage     Fires at                Notification type
========  ======================  ===================
24h       start − 24 hours        EVENT_REMINDER
2h        start − 2 hours         EVENT_REMINDER
1h        start − 1 hour          EVENT_REMINDER
starting  start − 15 minutes      EVENT_STARTING_SOON
========  ======================  ===================

Only the latest due stage is sent, so an event created two hours out gets
the 2h reminder and never a stale 24h one.  Each sent stage is recorded in
``event_reminders``; a new stage replaces the attendee's unread earlier
reminder.  Moving or cancelling an event clears both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from scorgs.database.models import (
    Event,
    EventRegistration,
    EventReminder,
    Notification,
    NotificationObject,
    RegistrationStatus,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.services.common import as_utc
from scorgs.services.notification_service import SYSTEM_ACTOR_ID, notify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderStage:
    name: str
    lead: timedelta
    entity_type: int
    phrase: str


REMINDER_STAGES: tuple[ReminderStage, ...] = (
    ReminderStage("24h", timedelta(hours=24), NT.EVENT_REMINDER, "is starting in 24 hours"),
    ReminderStage("2h", timedelta(hours=2), NT.EVENT_REMINDER, "is starting in 2 hours"),
    ReminderStage("1h", timedelta(hours=1), NT.EVENT_REMINDER, "is starting in 1 hour"),
    ReminderStage("starting", timedelta(minutes=15), NT.EVENT_STARTING_SOON, "is starting soon"),
)
_REMINDER_TYPES = (int(NT.EVENT_REMINDER), int(NT.EVENT_STARTING_SOON))


def due_stage(start_time: datetime, now: datetime) -> ReminderStage | None:
    """The most advanced stage whose send time has passed, or ``None``."""
    start = as_utc(start_time)
    if now >= start:
        return None
    current = None
    for stage in REMINDER_STAGES:
        if now >= start - stage.lead:
            current = stage
    return current


def _attendee_ids(session: Session, event_id: str) -> list[str]:
    return list(session.scalars(
        select(EventRegistration.user_id).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status != RegistrationStatus.CANCELLED,
        )
    ))


def _drop_unread_reminders(session: Session, event_id: str) -> int:
    objects = select(NotificationObject.id).where(
        NotificationObject.entity_type.in_(_REMINDER_TYPES),
        NotificationObject.entity_id == event_id,
    )
    result = session.execute(
        delete(Notification).where(
            Notification.notification_object_id.in_(objects),
            Notification.is_read.is_(False),
        )
    )
    return result.rowcount or 0


def reset_reminders(session: Session, event_id: str) -> None:
    """Forget sent stages and pull unread reminders; used when an event moves or is cancelled."""
    session.execute(delete(EventReminder).where(EventReminder.event_id == event_id))
    dropped = _drop_unread_reminders(session, event_id)
    if dropped:
        logger.info("Withdrew %d unread reminder(s) for event %s", dropped, event_id)


def _send(session: Session, event: Event, stage: ReminderStage) -> int:
    recipients = _attendee_ids(session, event.id)
    _drop_unread_reminders(session, event.id)
    notify(
        session,
        entity_type=stage.entity_type,
        entity_id=event.id,
        actor_id=SYSTEM_ACTOR_ID,
        notifier_ids=recipients,
        custom_data={
            "event_id": event.id,
            "event_title": event.title,
            "reminder_type": stage.name,
            "title": f"Event Reminder: {event.title}",
            "message": f"The event \"{event.title}\" {stage.phrase}!",
        },
    )
    session.add(EventReminder(event_id=event.id, reminder_type=stage.name, recipients=len(recipients)))
    return len(recipients)


def send_event_reminders(engine: Engine, *, now: datetime | None = None) -> dict:
    """Send every reminder that has come due; safe to run as often as you like."""
    now = now or utcnow()
    horizon = now + REMINDER_STAGES[0].lead
    sent = notified = 0

    with Session(engine) as session:
        events = session.scalars(
            select(Event).where(
                Event.is_active.is_(True),
                Event.start_time > now,
                Event.start_time <= horizon,
            ).order_by(Event.start_time.asc())
        ).all()

        for event in events:
            stage = due_stage(event.start_time, now)
            if stage is None:
                continue
            already = set(session.scalars(
                select(EventReminder.reminder_type).where(EventReminder.event_id == event.id)
            ))
            later = [s.name for s in REMINDER_STAGES[REMINDER_STAGES.index(stage):]]
            if already.intersection(later):
                continue
            notified += _send(session, event, stage)
            sent += 1
            logger.info("Sent %s reminder for event %s (%r)", stage.name, event.id, event.title)
        session.commit()

    return {"checked": len(events), "sent": sent, "notified": notified}

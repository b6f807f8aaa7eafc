"""
scorgs.services.hr_activity_service — HR activity feed
=======================================================

A read-only feed over ``audit_log``.  HR services already record every
mutation there; this module picks out the rows worth showing on an
organization's HR dashboard and renders them as activities:

- ``application_submitted`` / ``application_status_changed``
- ``onboarding_completed``
- ``performance_review_submitted``
- ``skill_verified``
- ``document_acknowledged``

Nothing is written here, so the feed can never drift from the audit trail.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, and_, or_, select
from sqlalchemy.orm import Session

from scorgs.database.models import AuditActionType, AuditLog, HRSkill, OnboardingStatus, ReviewStatus, User
from scorgs.errors import InvalidInputError
from scorgs.services.common import iso, paginate

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = (
    "application_submitted",
    "application_status_changed",
    "onboarding_completed",
    "performance_review_submitted",
    "skill_verified",
    "document_acknowledged",
)

# (target_table, action_type) pairs that can become an activity.
_SOURCES = (
    ("hr_applications", AuditActionType.CREATE),
    ("hr_applications", AuditActionType.STATUS_CHANGE),
    ("hr_onboarding_progress", AuditActionType.STATUS_CHANGE),
    ("hr_performance_reviews", AuditActionType.STATUS_CHANGE),
    ("hr_user_skills", AuditActionType.VERIFY),
    ("hr_document_acknowledgments", AuditActionType.CREATE),
)


def classify(entry: AuditLog) -> tuple[str, str] | None:
    """Return ``(activity_type, subject_user_id)`` or ``None`` for rows the feed skips."""
    after = entry.after_snapshot or {}
    key = (entry.target_table, entry.action_type)

    if key == ("hr_applications", AuditActionType.CREATE):
        return "application_submitted", after.get("user_id") or entry.actor_id
    if key == ("hr_applications", AuditActionType.STATUS_CHANGE):
        return "application_status_changed", after.get("user_id") or entry.actor_id
    if key == ("hr_onboarding_progress", AuditActionType.STATUS_CHANGE):
        if after.get("status") == OnboardingStatus.COMPLETED:
            return "onboarding_completed", after.get("user_id") or entry.actor_id
        return None
    if key == ("hr_performance_reviews", AuditActionType.STATUS_CHANGE):
        if after.get("status") == ReviewStatus.SUBMITTED:
            return "performance_review_submitted", after.get("reviewee_id") or entry.actor_id
        return None
    if key == ("hr_user_skills", AuditActionType.VERIFY):
        return "skill_verified", after.get("user_id") or entry.actor_id
    if key == ("hr_document_acknowledgments", AuditActionType.CREATE):
        return "document_acknowledged", entry.actor_id
    return None


def _describe(kind: str, entry: AuditLog, handle: str, skill_names: dict[str, str]) -> tuple[str, str, dict]:
    before = entry.before_snapshot or {}
    after = entry.after_snapshot or {}

    if kind == "application_submitted":
        return (
            "Application submitted",
            f"{handle} submitted an application to join the organization",
            {"application_id": entry.target_id},
        )
    if kind == "application_status_changed":
        old, new = before.get("status"), after.get("status")
        return (
            f"Application status changed to {new}",
            f"{handle}'s application status was updated from {old} to {new}",
            {"application_id": entry.target_id, "old_status": old, "new_status": new,
             "reviewer_id": entry.actor_id},
        )
    if kind == "onboarding_completed":
        return (
            "Onboarding completed",
            f"{handle} completed their onboarding checklist",
            {"progress_id": entry.target_id, "template_id": after.get("template_id")},
        )
    if kind == "performance_review_submitted":
        return (
            "Performance review submitted",
            f"A performance review for {handle} was submitted",
            {"review_id": entry.target_id, "reviewer_id": entry.actor_id},
        )
    if kind == "skill_verified":
        skill = skill_names.get(after.get("skill_id"), "a skill")
        return (
            f"Skill verified: {skill}",
            f"{handle}'s {skill} skill was verified",
            {"user_skill_id": entry.target_id, "skill_id": after.get("skill_id"),
             "proficiency_level": after.get("proficiency_level"), "verified_by": entry.actor_id},
        )
    title = after.get("title") or "a document"
    return (
        f"Document acknowledged: {title}",
        f"{handle} acknowledged {title}",
        {"document_id": after.get("document_id"), "version": after.get("acknowledged_version")},
    )


def _render(session: Session, rows: list[tuple[AuditLog, str, str]]) -> list[dict]:
    user_ids = {subject for _, _, subject in rows}
    users = {
        u.id: u for u in session.scalars(select(User).where(User.id.in_(user_ids)))
    } if user_ids else {}
    skill_ids = {
        (entry.after_snapshot or {}).get("skill_id")
        for entry, kind, _ in rows if kind == "skill_verified"
    }
    skill_names = dict(
        session.execute(select(HRSkill.id, HRSkill.name).where(HRSkill.id.in_(skill_ids))).all()
    ) if skill_ids else {}

    activities = []
    for entry, kind, subject in rows:
        user = users.get(subject)
        handle = (user.rsi_handle or user.username) if user else "Unknown user"
        title, description, metadata = _describe(kind, entry, handle, skill_names)
        activities.append({
            "id": entry.id,
            "organization_id": entry.organization_id,
            "activity_type": kind,
            "user_id": subject,
            "user_handle": handle,
            "user_avatar_url": user.avatar_url if user else None,
            "title": title,
            "description": description,
            "metadata": metadata,
            "created_at": iso(entry.timestamp),
        })
    return activities


def _source_clause():
    return or_(*(
        and_(AuditLog.target_table == table, AuditLog.action_type == str(action))
        for table, action in _SOURCES
    ))


def _matching(session: Session, stmt) -> list[tuple[AuditLog, str, str]]:
    rows = []
    for entry in session.scalars(stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())):
        found = classify(entry)
        if found is not None:
            rows.append((entry, *found))
    return rows


def list_activity(
    engine: Engine,
    organization_id: str,
    *,
    activity_types: list[str] | None = None,
    user_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Newest-first HR activity for one organization."""
    unknown = set(activity_types or []) - set(ACTIVITY_TYPES)
    if unknown:
        raise InvalidInputError(f"Unknown activity type(s): {', '.join(sorted(unknown))}")
    offset, limit = paginate(page, limit)

    stmt = select(AuditLog).where(AuditLog.organization_id == organization_id, _source_clause())
    if date_from is not None:
        stmt = stmt.where(AuditLog.timestamp >= date_from)
    if date_to is not None:
        stmt = stmt.where(AuditLog.timestamp <= date_to)

    with Session(engine) as session:
        rows = _matching(session, stmt)
        if activity_types:
            rows = [r for r in rows if r[1] in activity_types]
        if user_id:
            rows = [r for r in rows if r[2] == user_id]
        total = len(rows)
        activities = _render(session, rows[offset:offset + limit])
    logger.debug("HR activity for org %s: %d of %d", organization_id, len(activities), total)

    return {
        "activities": activities,
        "total": total,
        "page": max(1, page),
        "limit": limit,
        "has_more": offset + len(activities) < total,
    }

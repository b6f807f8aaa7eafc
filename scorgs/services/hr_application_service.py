"""
scorgs.services.hr_application_service — Membership applications
==================================================================

State machine::

    pending ──► under_review ──► interview_scheduled ──► approved
       │             │   ▲               │
       │             │   └───────────────┤
       └─────────────┴──────► rejected ◄─┘

``approved`` and ``rejected`` are terminal.  Every transition (including
the initial ``pending``) is appended to ``hr_application_status_history``.
Approval mints a single-use invite code the applicant redeems to join.

Duplicate rules on submit:

* an application still in flight, or an approved one → 409
* a rejection younger than ``application_reapply_days`` → 409 with the
  date the user may re-apply
* already an active member → 409
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from scorgs.config import DEFAULT_CONFIG
from scorgs.constants import (
    APPLICATION_CUSTOM_FIELDS_LIMIT,
    APPLICATION_FIELD_LIMITS,
    MEMBER_ROLE_NAME,
    Permission,
)
from scorgs.database.models import (
    ApplicationStatus,
    AuditActionType,
    HRApplication,
    HRApplicationStatusHistory,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import as_utc, get_organization, iso, log_action, paginate, row_to_dict
from scorgs.services.invite_service import add_invite
from scorgs.services.notification_service import notify
from scorgs.services.role_service import active_member, require_permission, role_by_name

logger = logging.getLogger(__name__)

S = ApplicationStatus

TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("under_review", "rejected"),
    "under_review": ("interview_scheduled", "approved", "rejected"),
    "interview_scheduled": ("approved", "rejected", "under_review"),
    "approved": (),
    "rejected": (),
}
IN_FLIGHT = (S.PENDING, S.UNDER_REVIEW, S.INTERVIEW_SCHEDULED)


def valid_transitions(status: str) -> list[str]:
    return list(TRANSITIONS.get(str(status), ()))


def validate_application_data(data: dict[str, Any]) -> None:
    for field, limit in APPLICATION_FIELD_LIMITS.items():
        value = data.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidInputError(f"{field} must be a string")
        if len(value) > limit:
            raise InvalidInputError(f"{field} must be at most {limit} characters")
    custom = data.get("custom_fields")
    if custom is not None:
        if not isinstance(custom, dict):
            raise InvalidInputError("custom_fields must be an object")
        if len(json.dumps(custom)) > APPLICATION_CUSTOM_FIELDS_LIMIT:
            raise InvalidInputError(
                f"custom_fields must serialize to at most {APPLICATION_CUSTOM_FIELDS_LIMIT} characters"
            )


def application_to_dict(app: HRApplication, username: str | None = None) -> dict:
    return {
        "id": app.id,
        "organization_id": app.organization_id,
        "user_id": app.user_id,
        "username": username,
        "status": str(app.status),
        "application_data": dict(app.application_data or {}),
        "reviewer_id": app.reviewer_id,
        "review_notes": app.review_notes,
        "rejection_reason": app.rejection_reason,
        "invite_code": app.invite_code,
        "valid_transitions": valid_transitions(app.status),
        "created_at": iso(app.created_at),
        "updated_at": iso(app.updated_at),
    }


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------
def submit_application(
    engine: Engine,
    organization_id: str,
    user_id: str,
    data: dict[str, Any],
    *,
    reapply_days: int = DEFAULT_CONFIG.application_reapply_days,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    validate_application_data(data)
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        if active_member(session, org.id, user_id) is not None:
            raise ConflictError("You are already a member of this organization")

        previous = session.scalars(
            select(HRApplication)
            .where(HRApplication.organization_id == org.id, HRApplication.user_id == user_id)
            .order_by(HRApplication.created_at.desc())
        ).all()
        for app in previous:
            if app.status in IN_FLIGHT:
                raise ConflictError("You already have an active application to this organization")
            if app.status == S.APPROVED:
                raise ConflictError("Your application to this organization was already approved")
        rejected = [a for a in previous if a.status == S.REJECTED]
        if rejected:
            last = max(as_utc(a.updated_at or a.created_at) for a in rejected)
            reapply_at = last + timedelta(days=reapply_days)
            if now < reapply_at:
                raise ConflictError(
                    f"You can re-apply after {reapply_at.date().isoformat()}",
                    can_reapply_at=reapply_at.isoformat(),
                )

        app = HRApplication(
            organization_id=org.id,
            user_id=user_id,
            status=S.PENDING,
            application_data=dict(data),
        )
        session.add(app)
        session.flush()
        session.add(HRApplicationStatusHistory(
            application_id=app.id, status=S.PENDING, changed_by=user_id,
        ))
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_applications",
            target_id=app.id,
            before=None,
            after=row_to_dict(app),
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.HR_APPLICATION_SUBMITTED,
            entity_id=app.id,
            actor_id=user_id,
            notifier_ids=[org.owner_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id, "application_id": app.id},
        )
        session.commit()
        logger.info("Application %s submitted to %s by %s", app.id, org.rsi_org_id, user_id)
        return application_to_dict(app)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------
def _transition(
    session: Session,
    app: HRApplication,
    new_status: str,
    reviewer_id: str,
    notes: str | None,
    rejection_reason: str | None,
) -> None:
    org = get_organization(session, app.organization_id)
    require_permission(
        session, org, reviewer_id,
        Permission.PROCESS_HR_APPLICATIONS, Permission.MANAGE_HR_APPLICATIONS,
    )
    new_status = str(new_status)
    if new_status not in TRANSITIONS:
        raise InvalidInputError(f"Unknown status '{new_status}'")
    if new_status not in TRANSITIONS.get(str(app.status), ()):
        raise InvalidInputError(
            f"Cannot change status from {app.status} to {new_status}",
            valid_transitions=valid_transitions(app.status),
        )
    if new_status == S.REJECTED and not (rejection_reason or "").strip():
        raise InvalidInputError("A rejection reason is required")

    before = row_to_dict(app)
    app.status = new_status
    app.reviewer_id = reviewer_id
    if notes is not None:
        app.review_notes = notes
    if new_status == S.REJECTED:
        app.rejection_reason = rejection_reason.strip()
    if new_status == S.APPROVED:
        member_role = role_by_name(session, org.id, MEMBER_ROLE_NAME)
        invite = add_invite(
            session, org, reviewer_id,
            role_id=member_role.id if member_role else None,
            max_uses=1,
        )
        app.invite_code = invite.code
    app.updated_at = utcnow()
    session.add(HRApplicationStatusHistory(
        application_id=app.id, status=new_status, changed_by=reviewer_id, notes=notes,
    ))
    session.flush()

    log_action(
        session,
        actor_id=reviewer_id,
        action_type=AuditActionType.STATUS_CHANGE,
        target_table="hr_applications",
        target_id=app.id,
        before=before,
        after=row_to_dict(app),
        organization_id=org.id,
    )
    notify(
        session,
        entity_type=NT.HR_APPLICATION_STATUS_CHANGED,
        entity_id=app.id,
        actor_id=reviewer_id,
        notifier_ids=[app.user_id],
        custom_data={
            "name": org.name,
            "rsi_org_id": org.rsi_org_id,
            "application_id": app.id,
            "status": str(new_status),
        },
    )


def update_status(
    engine: Engine,
    application_id: str,
    new_status: str,
    reviewer_id: str,
    *,
    notes: str | None = None,
    rejection_reason: str | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        app = session.get(HRApplication, application_id)
        if app is None:
            raise NotFoundError("Application not found")
        _transition(session, app, new_status, reviewer_id, notes, rejection_reason)
        session.commit()
        logger.info("Application %s → %s by %s", app.id, new_status, reviewer_id)
        return application_to_dict(app)


def bulk_update_status(
    engine: Engine,
    organization_id: str,
    application_ids: list[str],
    new_status: str,
    reviewer_id: str,
    *,
    notes: str | None = None,
    rejection_reason: str | None = None,
) -> list[dict]:
    """Apply one transition to many applications; each succeeds or fails alone."""
    results = []
    for app_id in application_ids:
        with Session(engine, expire_on_commit=False) as session:
            app = session.get(HRApplication, app_id)
            if app is None or app.organization_id != organization_id:
                results.append({"id": app_id, "success": False, "error": "Application not found"})
                continue
            try:
                _transition(session, app, new_status, reviewer_id, notes, rejection_reason)
                session.commit()
            except (InvalidInputError, PermissionDeniedError) as exc:
                session.rollback()
                results.append({"id": app_id, "success": False, "error": exc.message})
                continue
            results.append({"id": app_id, "success": True, "status": str(app.status)})
    return results


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_applications(
    engine: Engine,
    organization_id: str,
    *,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    offset, limit = paginate(page, limit)
    with Session(engine) as session:
        stmt = select(HRApplication).where(HRApplication.organization_id == organization_id)
        if status:
            stmt = stmt.where(HRApplication.status == status)
        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = session.execute(
            select(HRApplication, User.username)
            .join(User, User.id == HRApplication.user_id)
            .where(HRApplication.id.in_(select(stmt.subquery().c.id)))
            .order_by(HRApplication.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return {
            "applications": [application_to_dict(a, name) for a, name in rows],
            "total": total,
            "page": offset // limit + 1,
            "limit": limit,
        }


def get_application(engine: Engine, application_id: str, organization_id: str | None = None) -> dict:
    with Session(engine) as session:
        app = session.get(HRApplication, application_id)
        if app is None or (organization_id and app.organization_id != organization_id):
            raise NotFoundError("Application not found")
        user = session.get(User, app.user_id)
        return application_to_dict(app, user.username if user else None)


def application_history(engine: Engine, application_id: str) -> list[dict]:
    with Session(engine) as session:
        rows = session.scalars(
            select(HRApplicationStatusHistory)
            .where(HRApplicationStatusHistory.application_id == application_id)
            .order_by(HRApplicationStatusHistory.id.asc())
        ).all()
        return [
            {
                "status": str(r.status),
                "changed_by": r.changed_by,
                "notes": r.notes,
                "created_at": iso(r.created_at),
            }
            for r in rows
        ]


def list_my_applications(engine: Engine, user_id: str) -> list[dict]:
    with Session(engine) as session:
        apps = session.scalars(
            select(HRApplication)
            .where(HRApplication.user_id == user_id)
            .order_by(HRApplication.created_at.desc())
        ).all()
        return [application_to_dict(a) for a in apps]

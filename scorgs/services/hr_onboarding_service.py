"""
scorgs.services.hr_onboarding_service — Onboarding checklists
==============================================================

A *template* is an ordered task list attached to a role name; assigning it
to a member creates one ``hr_onboarding_progress`` row that tracks which
task ids are done.

Progress status is derived, never set directly:

* no tasks done → ``not_started``
* some done → ``in_progress`` (``started_at`` stamped once)
* all done → ``completed`` (``completed_at`` stamped)
* :func:`mark_overdue` flips unfinished rows older than
  ``onboarding_overdue_days`` to ``overdue``
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.config import DEFAULT_CONFIG
from scorgs.constants import Permission
from scorgs.database.models import (
    AuditActionType,
    HROnboardingProgress,
    HROnboardingTemplate,
    OnboardingStatus,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError
from scorgs.services.common import as_utc, get_organization, iso, log_action, row_to_dict
from scorgs.services.notification_service import notify
from scorgs.services.role_service import active_member, has_permission, require_permission

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Task validation
# ---------------------------------------------------------------------------
def normalize_tasks(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate a task list and fill defaults; raises 400 on bad input."""
    if not tasks:
        raise InvalidInputError("A template needs at least one task")
    seen: set[str] = set()
    normalized = []
    for index, task in enumerate(tasks):
        task_id = str(task.get("id") or "").strip()
        title = str(task.get("title") or "").strip()
        if not task_id:
            raise InvalidInputError(f"Task {index + 1} is missing an id")
        if not title:
            raise InvalidInputError(f"Task '{task_id}' is missing a title")
        if task_id in seen:
            raise InvalidInputError(f"Duplicate task id '{task_id}'")
        seen.add(task_id)
        hours = task.get("estimated_hours", 1)
        if not isinstance(hours, (int, float)) or hours < 0:
            raise InvalidInputError(f"Task '{task_id}' has an invalid estimated_hours")
        normalized.append({
            "id": task_id,
            "title": title,
            "description": task.get("description") or "",
            "required": bool(task.get("required", True)),
            "estimated_hours": hours,
            "order_index": int(task.get("order_index", index)),
        })
    return sorted(normalized, key=lambda t: t["order_index"])


def template_to_dict(template: HROnboardingTemplate) -> dict:
    tasks = list(template.tasks or [])
    return {
        "id": template.id,
        "organization_id": template.organization_id,
        "role_name": template.role_name,
        "tasks": tasks,
        "task_count": len(tasks),
        "estimated_duration_days": template.estimated_duration_days,
        "created_at": iso(template.created_at),
    }


def progress_to_dict(progress: HROnboardingProgress, template: HROnboardingTemplate | None = None) -> dict:
    data = {
        "id": progress.id,
        "organization_id": progress.organization_id,
        "user_id": progress.user_id,
        "template_id": progress.template_id,
        "status": str(progress.status),
        "completed_tasks": list(progress.completed_tasks or []),
        "completion_percentage": progress.completion_percentage,
        "started_at": iso(progress.started_at),
        "completed_at": iso(progress.completed_at),
        "created_at": iso(progress.created_at),
    }
    if template is not None:
        data.update(progress_report(progress, template))
    return data


def progress_report(progress: HROnboardingProgress, template: HROnboardingTemplate) -> dict:
    """Derived fields: remaining required tasks and the expected finish."""
    done = set(progress.completed_tasks or [])
    required = [t["id"] for t in (template.tasks or []) if t.get("required", True)]
    remaining = [t for t in required if t not in done]
    started = as_utc(progress.started_at)
    return {
        "role_name": template.role_name,
        "total_tasks": len(template.tasks or []),
        "required_remaining": remaining,
        "is_complete": not remaining,
        "estimated_completion": iso(
            started + timedelta(days=template.estimated_duration_days) if started else None
        ),
    }


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
def create_template(
    engine: Engine,
    organization_id: str,
    actor_id: str,
    *,
    role_name: str,
    tasks: list[dict[str, Any]],
    estimated_duration_days: int = 14,
) -> dict:
    if estimated_duration_days < 1:
        raise InvalidInputError("estimated_duration_days must be at least 1")
    normalized = normalize_tasks(tasks)
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(
            session, org, actor_id,
            Permission.CREATE_ONBOARDING_TEMPLATES, Permission.MANAGE_HR_ONBOARDING,
        )
        existing = session.scalar(
            select(HROnboardingTemplate).where(
                HROnboardingTemplate.organization_id == org.id,
                HROnboardingTemplate.role_name == role_name,
            )
        )
        if existing is not None:
            raise ConflictError(f"A template for role '{role_name}' already exists")

        template = HROnboardingTemplate(
            organization_id=org.id,
            role_name=role_name,
            tasks=normalized,
            estimated_duration_days=estimated_duration_days,
        )
        session.add(template)
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_onboarding_templates",
            target_id=template.id,
            before=None,
            after=row_to_dict(template),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Onboarding template for %r created in %s", role_name, org.rsi_org_id)
        return template_to_dict(template)


def update_template(
    engine: Engine,
    organization_id: str,
    template_id: str,
    actor_id: str,
    *,
    role_name: str | None = None,
    tasks: list[dict[str, Any]] | None = None,
    estimated_duration_days: int | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(
            session, org, actor_id,
            Permission.CREATE_ONBOARDING_TEMPLATES, Permission.MANAGE_HR_ONBOARDING,
        )
        template = session.get(HROnboardingTemplate, template_id)
        if template is None or template.organization_id != org.id:
            raise NotFoundError("Onboarding template not found")

        before = row_to_dict(template)
        if role_name is not None and role_name != template.role_name:
            clash = session.scalar(
                select(HROnboardingTemplate.id).where(
                    HROnboardingTemplate.organization_id == org.id,
                    HROnboardingTemplate.role_name == role_name,
                    HROnboardingTemplate.id != template.id,
                )
            )
            if clash is not None:
                raise ConflictError(f"A template for role '{role_name}' already exists")
            template.role_name = role_name
        if tasks is not None:
            template.tasks = normalize_tasks(tasks)
        if estimated_duration_days is not None:
            if estimated_duration_days < 1:
                raise InvalidInputError("estimated_duration_days must be at least 1")
            template.estimated_duration_days = estimated_duration_days
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.UPDATE,
            target_table="hr_onboarding_templates",
            target_id=template.id,
            before=before,
            after=row_to_dict(template),
            organization_id=org.id,
        )
        session.commit()
        return template_to_dict(template)


def list_templates(engine: Engine, organization_id: str) -> list[dict]:
    with Session(engine) as session:
        templates = session.scalars(
            select(HROnboardingTemplate)
            .where(HROnboardingTemplate.organization_id == organization_id)
            .order_by(HROnboardingTemplate.role_name)
        ).all()
        return [template_to_dict(t) for t in templates]


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
def assign_onboarding(
    engine: Engine,
    organization_id: str,
    user_id: str,
    template_id: str,
    actor_id: str,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.MANAGE_HR_ONBOARDING)
        template = session.get(HROnboardingTemplate, template_id)
        if template is None or template.organization_id != org.id:
            raise NotFoundError("Onboarding template not found")
        if active_member(session, org.id, user_id) is None:
            raise InvalidInputError("User is not a member of this organization")
        existing = session.scalar(
            select(HROnboardingProgress).where(
                HROnboardingProgress.user_id == user_id,
                HROnboardingProgress.template_id == template.id,
            )
        )
        if existing is not None:
            raise ConflictError("Onboarding already assigned for this template")

        progress = HROnboardingProgress(
            organization_id=org.id,
            user_id=user_id,
            template_id=template.id,
            status=OnboardingStatus.NOT_STARTED,
            completed_tasks=[],
            completion_percentage=0.0,
        )
        session.add(progress)
        session.flush()
        notify(
            session,
            entity_type=NT.HR_ONBOARDING_ASSIGNED,
            entity_id=progress.id,
            actor_id=actor_id,
            notifier_ids=[user_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id,
                         "role_name": template.role_name},
        )
        session.commit()
        logger.info("Onboarding %r assigned to %s in %s", template.role_name, user_id, org.rsi_org_id)
        return progress_to_dict(progress, template)


def complete_task(
    engine: Engine,
    progress_id: str,
    task_id: str,
    actor_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    """Tick off *task_id*; a repeat completion is a no-op."""
    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        progress = session.get(HROnboardingProgress, progress_id)
        if progress is None:
            raise NotFoundError("Onboarding progress not found")
        if progress.user_id != actor_id:
            org = get_organization(session, progress.organization_id)
            require_permission(session, org, actor_id, Permission.MANAGE_HR_ONBOARDING)

        template = session.get(HROnboardingTemplate, progress.template_id)
        task_ids = [t["id"] for t in (template.tasks or [])]
        if task_id not in task_ids:
            raise NotFoundError(f"Task '{task_id}' is not part of this onboarding")

        done = list(progress.completed_tasks or [])
        if task_id not in done:
            done.append(task_id)
            progress.completed_tasks = done
            # Ids dropped from the template since they were ticked don't count.
            current = set(done) & set(task_ids)
            progress.completion_percentage = round(len(current) / len(task_ids) * 100, 2)
            if progress.started_at is None:
                progress.started_at = now
            if len(current) >= len(task_ids):
                progress.status = OnboardingStatus.COMPLETED
                progress.completed_at = now
                log_action(
                    session,
                    actor_id=actor_id,
                    action_type=AuditActionType.STATUS_CHANGE,
                    target_table="hr_onboarding_progress",
                    target_id=progress.id,
                    before=None,
                    after=row_to_dict(progress),
                    organization_id=progress.organization_id,
                )
            else:
                progress.status = OnboardingStatus.IN_PROGRESS
            session.commit()
        return progress_to_dict(progress, template)


def get_progress(engine: Engine, progress_id: str) -> dict:
    with Session(engine) as session:
        progress = session.get(HROnboardingProgress, progress_id)
        if progress is None:
            raise NotFoundError("Onboarding progress not found")
        return progress_to_dict(progress, session.get(HROnboardingTemplate, progress.template_id))


def list_progress(engine: Engine, organization_id: str, *, status: str | None = None) -> list[dict]:
    with Session(engine) as session:
        stmt = (
            select(HROnboardingProgress, HROnboardingTemplate, User.username)
            .join(HROnboardingTemplate, HROnboardingTemplate.id == HROnboardingProgress.template_id)
            .join(User, User.id == HROnboardingProgress.user_id)
            .where(HROnboardingProgress.organization_id == organization_id)
        )
        if status:
            stmt = stmt.where(HROnboardingProgress.status == status)
        rows = session.execute(stmt.order_by(HROnboardingProgress.created_at.desc())).all()
        return [
            {**progress_to_dict(p, t), "username": name}
            for p, t, name in rows
        ]


def can_view_progress(engine: Engine, organization_id: str, user_id: str, target_user_id: str) -> bool:
    if user_id == target_user_id:
        return True
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        return has_permission(session, org, user_id, Permission.VIEW_HR_ONBOARDING)


def mark_overdue(
    engine: Engine,
    organization_id: str,
    *,
    overdue_days: int = DEFAULT_CONFIG.onboarding_overdue_days,
    now: datetime | None = None,
) -> int:
    """Flag stale unfinished onboarding; returns how many rows changed."""
    now = now or utcnow()
    cutoff = now - timedelta(days=overdue_days)
    with Session(engine) as session:
        candidates = session.scalars(
            select(HROnboardingProgress).where(
                HROnboardingProgress.organization_id == organization_id,
                HROnboardingProgress.status.in_(
                    [OnboardingStatus.NOT_STARTED, OnboardingStatus.IN_PROGRESS]
                ),
            )
        ).all()
        changed = 0
        for progress in candidates:
            if as_utc(progress.created_at) < cutoff:
                progress.status = OnboardingStatus.OVERDUE
                changed += 1
        session.commit()
    if changed:
        logger.info("Marked %d onboarding record(s) overdue in org %s", changed, organization_id)
    return changed

"""
scorgs.api.routes.hr_onboarding — Onboarding templates & progress
==================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from scorgs.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_member_org,
    get_org,
    require_org_permission,
)
from scorgs.api.rate_limit import rate_limited_user
from scorgs.config import ScorgsConfig
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import hr_onboarding_service

router = APIRouter(prefix="/organizations", tags=["hr-onboarding"])


class TemplateCreate(BaseModel):
    role_name: str = Field(min_length=1, max_length=100)
    tasks: list[dict[str, Any]]
    estimated_duration_days: int = Field(14, ge=1, le=365)


class TemplateUpdate(BaseModel):
    role_name: str | None = Field(None, min_length=1, max_length=100)
    tasks: list[dict[str, Any]] | None = None
    estimated_duration_days: int | None = Field(None, ge=1, le=365)


class Assignment(BaseModel):
    user_id: str
    template_id: str


@router.get("/{rsi_org_id}/onboarding/templates")
def list_templates(org: Organization = Depends(get_member_org), engine=Depends(get_engine)):
    return {"templates": hr_onboarding_service.list_templates(engine, org.id)}


@router.post("/{rsi_org_id}/onboarding/templates", status_code=201)
def create_template(
    body: TemplateCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_onboarding_service.create_template(
        engine, org.id, user["sub"],
        role_name=body.role_name, tasks=body.tasks,
        estimated_duration_days=body.estimated_duration_days,
    )


@router.put("/{rsi_org_id}/onboarding/templates/{template_id}")
def update_template(
    template_id: str,
    body: TemplateUpdate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_onboarding_service.update_template(
        engine, org.id, template_id, user["sub"], **body.model_dump(exclude_unset=True),
    )


@router.post("/{rsi_org_id}/onboarding/assignments", status_code=201)
def assign(
    body: Assignment,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_onboarding_service.assign_onboarding(engine, org.id, body.user_id, body.template_id, user["sub"])


@router.get("/{rsi_org_id}/onboarding/progress")
def list_progress(
    status: str | None = None,
    org: Organization = Depends(require_org_permission(
        Permission.VIEW_HR_ONBOARDING, Permission.MANAGE_HR_ONBOARDING,
    )),
    engine=Depends(get_engine),
):
    return {"progress": hr_onboarding_service.list_progress(engine, org.id, status=status)}


@router.get("/{rsi_org_id}/onboarding/progress/{progress_id}")
def get_progress(
    progress_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    progress = hr_onboarding_service.get_progress(engine, progress_id)
    if progress["organization_id"] != org.id:
        raise HTTPException(404, "Onboarding progress not found")
    if not hr_onboarding_service.can_view_progress(engine, org.id, user["sub"], progress["user_id"]):
        raise HTTPException(403, "Insufficient permissions")
    return progress


@router.post("/{rsi_org_id}/onboarding/progress/{progress_id}/tasks/{task_id}/complete")
def complete_task(
    progress_id: str,
    task_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_onboarding_service.complete_task(engine, progress_id, task_id, user["sub"])


@router.post("/{rsi_org_id}/onboarding/mark-overdue")
def mark_overdue(
    org: Organization = Depends(require_org_permission(Permission.MANAGE_HR_ONBOARDING)),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    count = hr_onboarding_service.mark_overdue(engine, org.id, overdue_days=cfg.onboarding_overdue_days)
    return {"marked_overdue": count}

"""
scorgs.api.routes.hr_applications — Membership applications
============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from scorgs.api.deps import get_config, get_engine, get_org, require_org_permission
from scorgs.api.rate_limit import rate_limited_user
from scorgs.config import ScorgsConfig
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import hr_application_service

router = APIRouter(prefix="/organizations", tags=["hr-applications"])

_viewer = require_org_permission(
    Permission.VIEW_HR_APPLICATIONS,
    Permission.PROCESS_HR_APPLICATIONS,
    Permission.MANAGE_HR_APPLICATIONS,
)


class ApplicationSubmit(BaseModel):
    cover_letter: str | None = None
    experience: str | None = None
    availability: str | None = None
    custom_fields: dict[str, Any] | None = None


class StatusChange(BaseModel):
    status: str
    notes: str | None = None
    rejection_reason: str | None = None


class BulkStatusChange(StatusChange):
    application_ids: list[str] = Field(min_length=1, max_length=100)


@router.post("/{rsi_org_id}/applications", status_code=201)
def submit_application(
    body: ApplicationSubmit,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    return hr_application_service.submit_application(
        engine, org.id, user["sub"], body.model_dump(exclude_none=True),
        reapply_days=cfg.application_reapply_days,
    )


@router.get("/{rsi_org_id}/applications")
def list_applications(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org: Organization = Depends(_viewer),
    engine=Depends(get_engine),
):
    return hr_application_service.list_applications(engine, org.id, status=status, page=page, limit=limit)


@router.get("/{rsi_org_id}/applications/{application_id}")
def get_application(application_id: str, org: Organization = Depends(_viewer), engine=Depends(get_engine)):
    application = hr_application_service.get_application(engine, application_id, org.id)
    application["history"] = hr_application_service.application_history(engine, application_id)
    return application


@router.put("/{rsi_org_id}/applications/bulk-status")
def bulk_update_status(
    body: BulkStatusChange,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    results = hr_application_service.bulk_update_status(
        engine, org.id, body.application_ids, body.status, user["sub"],
        notes=body.notes, rejection_reason=body.rejection_reason,
    )
    return {
        "results": results,
        "succeeded": sum(1 for r in results if r["success"]),
        "failed": sum(1 for r in results if not r["success"]),
    }


@router.put("/{rsi_org_id}/applications/{application_id}/status")
def update_status(
    application_id: str,
    body: StatusChange,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    hr_application_service.get_application(engine, application_id, org.id)
    return hr_application_service.update_status(
        engine, application_id, body.status, user["sub"],
        notes=body.notes, rejection_reason=body.rejection_reason,
    )

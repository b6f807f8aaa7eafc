"""
scorgs.api.routes.hr_activity — HR activity feed
=================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from scorgs.api.deps import get_engine, require_org_permission
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import hr_activity_service

router = APIRouter(prefix="/organizations", tags=["hr-activity"])

_viewer = require_org_permission(
    Permission.HR_MANAGER,
    Permission.VIEW_HR_ANALYTICS,
    Permission.MANAGE_HR_ANALYTICS,
)


@router.get("/{rsi_org_id}/hr-activity")
def list_activity(
    activity_type: list[str] | None = Query(None),
    user_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org: Organization = Depends(_viewer),
    engine=Depends(get_engine),
):
    return hr_activity_service.list_activity(
        engine, org.id,
        activity_types=activity_type, user_id=user_id,
        date_from=date_from, date_to=date_to,
        page=page, limit=limit,
    )

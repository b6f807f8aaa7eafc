"""
scorgs.api.routes.notifications — The current user's notification feed
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from scorgs.api.deps import get_current_user, get_engine
from scorgs.api.rate_limit import rate_limited_user
from scorgs.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return notification_service.list_notifications(
        engine, user["sub"], page=page, limit=limit, unread_only=unread_only,
    )


@router.get("/unread-count")
def unread_count(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    return {"unread_count": notification_service.unread_count(engine, user["sub"])}


@router.post("/read-all")
def mark_all_read(user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    return {"updated": notification_service.mark_all_read(engine, user["sub"])}


@router.post("/{notification_id}/read", status_code=204)
def mark_read(notification_id: str, user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    notification_service.mark_read(engine, user["sub"], notification_id)
    return None


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    notification_service.delete_notification(engine, user["sub"], notification_id)
    return None

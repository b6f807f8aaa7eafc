"""
scorgs.api.routes.users — The current user's memberships & applications
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from scorgs.api.deps import get_current_user, get_engine
from scorgs.services import hr_application_service, user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/organizations")
def my_organizations(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    return {"organizations": user_service.list_user_organizations(engine, user["sub"])}


@router.get("/me/applications")
def my_applications(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    return {"applications": hr_application_service.list_my_applications(engine, user["sub"])}


@router.get("/{user_id}")
def get_user(user_id: str, engine=Depends(get_engine)):
    profile = user_service.get_user(engine, user_id)
    profile.pop("discord_id", None)
    return profile

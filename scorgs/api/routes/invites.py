"""
scorgs.api.routes.invites — Invite codes
=========================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from scorgs.api.deps import get_current_user, get_engine, get_org, require_org_permission
from scorgs.api.rate_limit import rate_limited_user
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import invite_service

router = APIRouter(tags=["invites"])


class InviteCreate(BaseModel):
    role_id: str | None = None
    max_uses: int | None = Field(None, ge=1)
    expires_at: datetime | None = None


@router.get("/organizations/{rsi_org_id}/invites")
def list_invites(
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"invites": invite_service.list_invites(engine, org.id, user["sub"])}


@router.post("/organizations/{rsi_org_id}/invites", status_code=201)
def create_invite(
    body: InviteCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return invite_service.create_invite(
        engine, org.id, user["sub"],
        role_id=body.role_id, max_uses=body.max_uses, expires_at=body.expires_at,
    )


@router.get("/organizations/{rsi_org_id}/invites/stats")
def invite_stats(
    org: Organization = Depends(require_org_permission(Permission.INVITE_MEMBERS, Permission.MANAGE_MEMBERS)),
    engine=Depends(get_engine),
):
    return invite_service.invite_stats(engine, org.id)


@router.delete("/organizations/{rsi_org_id}/invites/{invite_id}", status_code=204)
def deactivate_invite(
    invite_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    invite_service.deactivate_invite(engine, org.id, invite_id, user["sub"])
    return None


@router.post("/invites/{code}/accept")
def accept_invite(
    code: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return invite_service.use_invite(engine, code, user["sub"])

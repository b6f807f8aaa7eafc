"""
scorgs.api.routes.roles — Roles, permissions & member management
=================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from scorgs.api.deps import get_current_user, get_engine, get_member_org, get_org
from scorgs.api.rate_limit import rate_limited_user
from scorgs.constants import ALL_PERMISSIONS
from scorgs.database.models import Organization
from scorgs.services import role_service

router = APIRouter(prefix="/organizations", tags=["roles"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    rank: int = Field(ge=1, le=99)
    description: str | None = None
    permissions: list[str] = []


class RoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    rank: int | None = Field(None, ge=1, le=99)
    description: str | None = None
    permissions: list[str] | None = None


class RoleAssignment(BaseModel):
    role_id: str


class HRRoleCheck(BaseModel):
    role_name: str


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/roles")
def list_roles(org: Organization = Depends(get_member_org), engine=Depends(get_engine)):
    return {"roles": role_service.list_roles(engine, org.id)}


@router.post("/{rsi_org_id}/roles", status_code=201)
def create_role(
    body: RoleCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return role_service.create_role(
        engine, org.id, user["sub"],
        name=body.name, rank=body.rank,
        description=body.description, permissions=body.permissions,
    )


@router.put("/{rsi_org_id}/roles/{role_id}")
def update_role(
    role_id: str,
    body: RoleUpdate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return role_service.update_role(engine, org.id, role_id, user["sub"], **body.model_dump(exclude_unset=True))


@router.delete("/{rsi_org_id}/roles/{role_id}", status_code=204)
def delete_role(
    role_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    role_service.delete_role(engine, org.id, role_id, user["sub"])
    return None


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/permissions")
def available_permissions(org: Organization = Depends(get_member_org)):
    return {"permissions": list(ALL_PERMISSIONS)}


@router.get("/{rsi_org_id}/permissions/me")
def my_permissions(
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return role_service.get_user_permissions(engine, org.id, user["sub"])


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------
@router.put("/{rsi_org_id}/members/{user_id}/role")
def assign_role(
    user_id: str,
    body: RoleAssignment,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return role_service.assign_role(engine, org.id, user_id, body.role_id, user["sub"])


@router.post("/{rsi_org_id}/members/{user_id}/validate-hr-role")
def validate_hr_role(
    user_id: str,
    body: HRRoleCheck,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return role_service.validate_hr_role_assignment(engine, org.id, user["sub"], user_id, body.role_name)


@router.delete("/{rsi_org_id}/members/{user_id}", status_code=204)
def remove_member(
    user_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    role_service.remove_member(engine, org.id, user_id, user["sub"])
    return None

"""
scorgs.api.routes.hr_skills — Skill catalogue, member skills & certifications
==============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from scorgs.api.deps import get_config, get_engine, get_member_org, get_org
from scorgs.api.rate_limit import rate_limited_user
from scorgs.config import ScorgsConfig
from scorgs.database.models import Organization
from scorgs.services import hr_skill_service

router = APIRouter(prefix="/organizations", tags=["hr-skills"])
skills_router = APIRouter(prefix="/skills", tags=["skills"])


class SkillCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    category: str
    description: str | None = None
    verification_required: bool = False


class UserSkillCreate(BaseModel):
    skill_id: str
    proficiency_level: str
    notes: str | None = None


class UserSkillUpdate(BaseModel):
    proficiency_level: str | None = None
    notes: str | None = None


class CertificationCreate(BaseModel):
    user_id: str
    name: str = Field(min_length=1, max_length=255)
    issued_date: datetime
    expiration_date: datetime | None = None
    description: str | None = None
    certificate_url: str | None = None


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
@skills_router.get("")
def list_skills(category: str | None = None, engine=Depends(get_engine)):
    return {"skills": hr_skill_service.list_skills(engine, category=category)}


@skills_router.post("", status_code=201)
def create_skill(body: SkillCreate, user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    return hr_skill_service.create_skill(engine, **body.model_dump())


# ---------------------------------------------------------------------------
# Member skills
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/skills")
def list_user_skills(
    user_id: str | None = None,
    org: Organization = Depends(get_member_org),
    engine=Depends(get_engine),
):
    return {"skills": hr_skill_service.list_user_skills(engine, org.id, user_id=user_id)}


@router.get("/{rsi_org_id}/skills/matrix")
def skill_matrix(org: Organization = Depends(get_member_org), engine=Depends(get_engine)):
    return {"matrix": hr_skill_service.skill_matrix(engine, org.id)}


@router.post("/{rsi_org_id}/skills", status_code=201)
def add_user_skill(
    body: UserSkillCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_skill_service.add_user_skill(engine, org.id, user["sub"], **body.model_dump())


@router.put("/{rsi_org_id}/skills/{user_skill_id}")
def update_user_skill(
    user_skill_id: str,
    body: UserSkillUpdate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_skill_service.update_user_skill(
        engine, user_skill_id, user["sub"], **body.model_dump(exclude_unset=True),
    )


@router.post("/{rsi_org_id}/skills/{user_skill_id}/verify")
def verify_user_skill(
    user_skill_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    result = hr_skill_service.verify_user_skill(engine, user_skill_id, user["sub"])
    if result["organization_id"] != org.id:
        raise HTTPException(404, "Skill record not found")
    return result


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/certifications")
def list_certifications(
    user_id: str | None = None,
    org: Organization = Depends(get_member_org),
    engine=Depends(get_engine),
):
    return {"certifications": hr_skill_service.list_certifications(engine, org.id, user_id=user_id)}


@router.get("/{rsi_org_id}/certifications/expiring")
def expiring_certifications(
    within_days: int | None = Query(None, ge=1, le=365),
    org: Organization = Depends(get_member_org),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    days = within_days or cfg.certification_expiry_warning_days
    return {
        "within_days": days,
        "certifications": hr_skill_service.expiring_certifications(engine, org.id, within_days=days),
    }


@router.post("/{rsi_org_id}/certifications", status_code=201)
def add_certification(
    body: CertificationCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_skill_service.add_certification(engine, org.id, user["sub"], **body.model_dump())


@router.delete("/{rsi_org_id}/certifications/{certification_id}", status_code=204)
def delete_certification(
    certification_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    hr_skill_service.delete_certification(engine, certification_id, user["sub"])
    return None

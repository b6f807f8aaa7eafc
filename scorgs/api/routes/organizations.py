"""
scorgs.api.routes.organizations — Organization registry, upvotes & membership
==============================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from scorgs.api.deps import get_config, get_engine, get_optional_user, get_rsi_client
from scorgs.api.rate_limit import rate_limited_user
from scorgs.clients.rsi import RSIClient
from scorgs.config import ScorgsConfig
from scorgs.database.engine import run_db
from scorgs.errors import ExternalServiceError
from scorgs.services import organization_service, review_service, user_service

router = APIRouter(prefix="/organizations", tags=["organizations"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class OrganizationCreate(BaseModel):
    rsi_org_id: str = Field(min_length=1, max_length=50)
    languages: list[str] | None = None
    playstyle_tags: list[str] | None = None
    focus_tags: list[str] | None = None


class OrganizationUpdate(BaseModel):
    description: str | None = None
    headline: str | None = None
    languages: list[str] | None = None
    playstyle_tags: list[str] | None = None
    focus_tags: list[str] | None = None


async def _scrape(rsi: RSIClient, rsi_org_id: str):
    page = await rsi.fetch_organization(rsi_org_id)
    if page is None:
        raise ExternalServiceError(f"Could not load the RSI page for '{rsi_org_id}'")
    return page


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
@router.get("")
def list_organizations(
    is_registered: bool | None = None,
    languages: list[str] | None = Query(None),
    playstyle_tags: list[str] | None = Query(None),
    focus_tags: list[str] | None = Query(None),
    search: str | None = None,
    sort_by: str = "total_upvotes",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine=Depends(get_engine),
):
    return organization_service.list_organizations(
        engine,
        is_registered=is_registered,
        languages=languages,
        playstyle_tags=playstyle_tags,
        focus_tags=focus_tags,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.post("", status_code=201)
async def create_organization(
    body: OrganizationCreate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    rsi: RSIClient = Depends(get_rsi_client),
):
    rsi_org_id = body.rsi_org_id.strip().upper()
    scraped = await _scrape(rsi, rsi_org_id)
    return await run_db(
        organization_service.create_organization,
        engine, user["sub"], rsi_org_id, scraped,
        languages=body.languages,
        playstyle_tags=body.playstyle_tags,
        focus_tags=body.focus_tags,
    )


@router.get("/{rsi_org_id}")
def get_organization(rsi_org_id: str, engine=Depends(get_engine)):
    return organization_service.get_organization(engine, rsi_org_id)


@router.put("/{rsi_org_id}")
def update_organization(
    rsi_org_id: str,
    body: OrganizationUpdate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(400, "No fields to update")
    return organization_service.update_organization(engine, rsi_org_id, user["sub"], updates)


@router.delete("/{rsi_org_id}", status_code=204)
def delete_organization(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    organization_service.delete_organization(engine, rsi_org_id, user["sub"])
    return None


@router.post("/{rsi_org_id}/verify")
async def verify_organization(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    rsi: RSIClient = Depends(get_rsi_client),
):
    scraped = await _scrape(rsi, rsi_org_id.upper())
    return await run_db(
        organization_service.verify_organization, engine, rsi_org_id, user["sub"], scraped,
    )


@router.get("/{rsi_org_id}/verification-sentinel")
def verification_sentinel(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return {
        "verification_sentinel": organization_service.get_verification_sentinel(
            engine, rsi_org_id, user["sub"],
        )
    }


# ---------------------------------------------------------------------------
# Upvotes
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/upvote")
def upvote_status(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    return organization_service.get_upvote_status(
        engine, rsi_org_id, user["sub"], cooldown_days=cfg.upvote_cooldown_days,
    )


@router.post("/{rsi_org_id}/upvote")
def upvote(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    return organization_service.upvote_organization(
        engine, rsi_org_id, user["sub"], cooldown_days=cfg.upvote_cooldown_days,
    )


@router.delete("/{rsi_org_id}/upvote")
def remove_upvote(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    cfg: ScorgsConfig = Depends(get_config),
):
    return organization_service.remove_upvote(
        engine, rsi_org_id, user["sub"], cooldown_days=cfg.upvote_cooldown_days,
    )


# ---------------------------------------------------------------------------
# Members & ratings
# ---------------------------------------------------------------------------
@router.get("/{rsi_org_id}/members")
def list_members(
    rsi_org_id: str,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    viewer = user["sub"] if user else None
    return {"members": organization_service.list_members(engine, rsi_org_id, viewer)}


@router.post("/{rsi_org_id}/leave", status_code=204)
def leave_organization(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    user_service.leave_organization(engine, rsi_org_id, user["sub"])
    return None


@router.patch("/{rsi_org_id}/visibility")
def toggle_visibility(
    rsi_org_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return user_service.toggle_membership_visibility(engine, rsi_org_id, user["sub"])


@router.get("/{rsi_org_id}/ratings")
def rating_summary(rsi_org_id: str, engine=Depends(get_engine)):
    org = organization_service.get_organization(engine, rsi_org_id)
    return review_service.organization_rating_summary(engine, org["id"])

"""
scorgs.api.routes.events — Events, registrations & reviews
===========================================================

Creating, editing or cancelling an org event may need mirroring to the
linked Discord guild.  That runs as a background task after the response
so a slow or failing Discord never blocks the request.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from scorgs.api.deps import get_current_user, get_discord_client, get_engine, get_optional_user
from scorgs.api.rate_limit import rate_limited_user
from scorgs.clients.discord_api import DiscordRestClient
from scorgs.constants import MAX_EVENT_REVIEW_LENGTH
from scorgs.services import discord_sync, event_service, organization_service, review_service

router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    start_time: datetime
    rsi_org_id: str | None = None
    description: str | None = None
    end_time: datetime | None = None
    location: str | None = None
    languages: list[str] | None = None
    playstyle_tags: list[str] | None = None
    max_participants: int | None = Field(None, ge=1)
    is_public: bool = True
    registration_deadline: datetime | None = None


class EventUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    start_time: datetime | None = None
    description: str | None = None
    end_time: datetime | None = None
    location: str | None = None
    languages: list[str] | None = None
    playstyle_tags: list[str] | None = None
    max_participants: int | None = Field(None, ge=1)
    is_public: bool | None = None
    registration_deadline: datetime | None = None


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    review_text: str | None = Field(None, max_length=MAX_EVENT_REVIEW_LENGTH)
    is_anonymous: bool = False


def _org_id(engine, rsi_org_id: str | None) -> str | None:
    if not rsi_org_id:
        return None
    return organization_service.get_organization(engine, rsi_org_id)["id"]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@router.get("")
def list_events(
    rsi_org_id: str | None = None,
    upcoming: bool = False,
    language: str | None = None,
    tag: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    return event_service.list_events(
        engine,
        organization_id=_org_id(engine, rsi_org_id),
        upcoming=upcoming,
        language=language,
        tag=tag,
        viewer_id=user["sub"] if user else None,
        page=page,
        limit=limit,
    )


@router.post("", status_code=201)
def create_event(
    body: EventCreate,
    background: BackgroundTasks,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    discord: DiscordRestClient | None = Depends(get_discord_client),
):
    fields = body.model_dump(exclude={"rsi_org_id"})
    result = event_service.create_event(
        engine, user["sub"], organization_id=_org_id(engine, body.rsi_org_id), **fields,
    )
    if result["discord_sync_scheduled"]:
        if discord is None:
            logger.warning("Event %s wants a Discord sync but no bot token is configured", result["id"])
        else:
            background.add_task(discord_sync.sync_event, engine, discord, result["id"])
    return result


@router.get("/{event_id}")
def get_event(
    event_id: str,
    engine=Depends(get_engine),
    user: dict | None = Depends(get_optional_user),
):
    return event_service.get_event(engine, event_id, viewer_id=user["sub"] if user else None)


@router.put("/{event_id}")
def update_event(
    event_id: str,
    body: EventUpdate,
    background: BackgroundTasks,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    discord: DiscordRestClient | None = Depends(get_discord_client),
):
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(400, "No fields to update")
    result = event_service.update_event(engine, event_id, user["sub"], updates)
    if discord is not None:
        background.add_task(discord_sync.resync_if_mirrored, engine, discord, event_id)
    return result


@router.delete("/{event_id}", status_code=204)
def cancel_event(
    event_id: str,
    background: BackgroundTasks,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    discord: DiscordRestClient | None = Depends(get_discord_client),
):
    event_service.cancel_event(engine, event_id, user["sub"])
    if discord is not None:
        background.add_task(discord_sync.resync_if_mirrored, engine, discord, event_id)
    return None


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------
@router.post("/{event_id}/register", status_code=201)
def register(event_id: str, user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    return event_service.register_for_event(engine, event_id, user["sub"])


@router.delete("/{event_id}/register", status_code=204)
def unregister(event_id: str, user: dict = Depends(rate_limited_user), engine=Depends(get_engine)):
    event_service.unregister_from_event(engine, event_id, user["sub"])
    return None


@router.get("/{event_id}/registrations")
def list_registrations(
    event_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return event_service.list_registrations(engine, event_id)


@router.post("/{event_id}/attendance/{user_id}")
def mark_attendance(
    event_id: str,
    user_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return event_service.mark_attendance(engine, event_id, user_id, user["sub"])


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
@router.get("/{event_id}/reviews")
def list_reviews(event_id: str, engine=Depends(get_engine)):
    return {"reviews": review_service.list_reviews(engine, event_id)}


@router.get("/{event_id}/reviews/stats")
def review_stats(event_id: str, engine=Depends(get_engine)):
    return review_service.review_stats(engine, event_id)


@router.get("/{event_id}/reviews/eligibility")
def review_eligibility(
    event_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return review_service.check_review_eligibility(engine, event_id, user["sub"])


@router.post("/{event_id}/reviews", status_code=201)
def create_review(
    event_id: str,
    body: ReviewCreate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return review_service.create_review(
        engine, event_id, user["sub"],
        rating=body.rating, review_text=body.review_text, is_anonymous=body.is_anonymous,
    )

"""
scorgs.api.routes.comments — Organization page comments
========================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from scorgs.api.deps import get_engine, get_optional_user, get_org
from scorgs.api.rate_limit import rate_limited_user
from scorgs.constants import MAX_COMMENT_LENGTH
from scorgs.database.models import Organization
from scorgs.services import comment_service

router = APIRouter(prefix="/organizations", tags=["comments"])
comments_router = APIRouter(prefix="/comments", tags=["comments"])


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)
    parent_id: str | None = None


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)


class CommentVoteBody(BaseModel):
    vote_type: Literal["upvote", "downvote"]


@router.get("/{rsi_org_id}/comments")
def list_comments(
    sort: Literal["newest", "oldest", "top"] = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org: Organization = Depends(get_org),
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    return comment_service.list_comments(
        engine, org.id, viewer_id=user["sub"] if user else None, sort=sort, page=page, limit=limit,
    )


@router.post("/{rsi_org_id}/comments", status_code=201)
def create_comment(
    body: CommentCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return comment_service.create_comment(engine, org.id, user["sub"], body.content, parent_id=body.parent_id)


@comments_router.get("/{comment_id}")
def get_comment(
    comment_id: str,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    return comment_service.get_comment(engine, comment_id, viewer_id=user["sub"] if user else None)


@comments_router.get("/{comment_id}/replies")
def list_replies(
    comment_id: str,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    return {"replies": comment_service.list_replies(engine, comment_id, viewer_id=user["sub"] if user else None)}


@comments_router.put("/{comment_id}")
def update_comment(
    comment_id: str,
    body: CommentUpdate,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return comment_service.update_comment(engine, comment_id, user["sub"], body.content)


@comments_router.delete("/{comment_id}", status_code=204)
def delete_comment(
    comment_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    comment_service.delete_comment(engine, comment_id, user["sub"])
    return None


@comments_router.post("/{comment_id}/vote")
def vote_comment(
    comment_id: str,
    body: CommentVoteBody,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return comment_service.vote_comment(engine, comment_id, user["sub"], body.vote_type)


@comments_router.delete("/{comment_id}/vote")
def remove_vote(
    comment_id: str,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return comment_service.remove_vote(engine, comment_id, user["sub"])

"""
scorgs.api.routes.hr_performance — Performance reviews & goals
===============================================================

Reviewers and HR can see every review in the organization; everybody else
only sees the reviews written about them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from scorgs.api.deps import get_current_user, get_engine, get_member_org, get_org
from scorgs.api.rate_limit import rate_limited_user
from scorgs.constants import Permission
from scorgs.database.models import Organization
from scorgs.services import hr_performance_service, role_service

router = APIRouter(prefix="/organizations", tags=["hr-performance"])

_REVIEW_READERS = (
    Permission.VIEW_HR_PERFORMANCE,
    Permission.MANAGE_HR_PERFORMANCE,
    Permission.CONDUCT_PERFORMANCE_REVIEWS,
)


class ReviewCreate(BaseModel):
    reviewee_id: str
    review_period_start: datetime
    review_period_end: datetime
    ratings: dict[str, Any] | None = None
    strengths: list[str] | None = None
    areas_for_improvement: list[str] | None = None


class ReviewUpdate(BaseModel):
    ratings: dict[str, Any] | None = None
    strengths: list[str] | None = None
    areas_for_improvement: list[str] | None = None


class GoalCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    target_date: datetime | None = None


class GoalProgress(BaseModel):
    progress: int = Field(ge=0, le=100)


def _can_read_all(engine, org: Organization, user_id: str) -> bool:
    return any(role_service.user_has_permission(engine, org.id, user_id, p) for p in _REVIEW_READERS)


def _review_in_org(engine, org: Organization, review_id: str) -> dict:
    review = hr_performance_service.get_review(engine, review_id)
    if review["organization_id"] != org.id:
        raise HTTPException(404, "Performance review not found")
    return review


@router.get("/{rsi_org_id}/performance/reviews")
def list_reviews(
    reviewee_id: str | None = None,
    status: str | None = None,
    org: Organization = Depends(get_member_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    if not _can_read_all(engine, org, user["sub"]):
        reviewee_id = user["sub"]
    return {
        "reviews": hr_performance_service.list_reviews(
            engine, org.id, reviewee_id=reviewee_id, status=status,
        )
    }


@router.post("/{rsi_org_id}/performance/reviews", status_code=201)
def create_review(
    body: ReviewCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_performance_service.create_review(engine, org.id, user["sub"], **body.model_dump())


@router.get("/{rsi_org_id}/performance/reviews/{review_id}")
def get_review(
    review_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    review = _review_in_org(engine, org, review_id)
    if user["sub"] not in (review["reviewer_id"], review["reviewee_id"]) and not _can_read_all(
        engine, org, user["sub"]
    ):
        raise HTTPException(403, "Insufficient permissions")
    return review


@router.put("/{rsi_org_id}/performance/reviews/{review_id}")
def update_review(
    review_id: str,
    body: ReviewUpdate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _review_in_org(engine, org, review_id)
    return hr_performance_service.update_review(
        engine, review_id, user["sub"], **body.model_dump(exclude_unset=True),
    )


@router.post("/{rsi_org_id}/performance/reviews/{review_id}/submit")
def submit_review(
    review_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _review_in_org(engine, org, review_id)
    return hr_performance_service.submit_review(engine, review_id, user["sub"])


@router.post("/{rsi_org_id}/performance/reviews/{review_id}/acknowledge")
def acknowledge_review(
    review_id: str,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _review_in_org(engine, org, review_id)
    return hr_performance_service.acknowledge_review(engine, review_id, user["sub"])


@router.post("/{rsi_org_id}/performance/reviews/{review_id}/goals", status_code=201)
def add_goal(
    review_id: str,
    body: GoalCreate,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    _review_in_org(engine, org, review_id)
    return hr_performance_service.add_goal(engine, review_id, user["sub"], **body.model_dump())


@router.put("/{rsi_org_id}/performance/goals/{goal_id}/progress")
def update_goal_progress(
    goal_id: str,
    body: GoalProgress,
    org: Organization = Depends(get_org),
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
):
    return hr_performance_service.update_goal_progress(
        engine, goal_id, user["sub"], body.progress, organization_id=org.id,
    )


@router.get("/{rsi_org_id}/performance/next-review/{user_id}")
def next_review(
    user_id: str,
    org: Organization = Depends(get_member_org),
    engine=Depends(get_engine),
):
    return {"user_id": user_id, "next_review_due": hr_performance_service.next_review_due(engine, org.id, user_id)}

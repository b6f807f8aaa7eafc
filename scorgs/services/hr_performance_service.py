"""
scorgs.services.hr_performance_service — Performance reviews & goals
=====================================================================

Lifecycle: ``draft`` → ``submitted`` (by the reviewer) → ``acknowledged``
(by the reviewee).  Only drafts can be edited.

Ratings are a mapping of category → ``{"score": 1..5, "comment": str}``;
``overall_rating`` is the mean score rounded to two places.  A reviewee can
have at most one review covering any given day within an organization.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.constants import FIRST_REVIEW_DUE_DAYS, MAX_REVIEW_PERIOD_DAYS, REVIEW_CYCLE_DAYS, Permission
from scorgs.database.models import (
    AuditActionType,
    GoalStatus,
    HRPerformanceGoal,
    HRPerformanceReview,
    ReviewStatus,
    utcnow,
)
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import as_utc, get_organization, iso, log_action, row_to_dict
from scorgs.services.role_service import active_member, require_permission

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
def validate_ratings(ratings: dict[str, Any]) -> dict[str, dict]:
    cleaned: dict[str, dict] = {}
    for category, entry in (ratings or {}).items():
        if not isinstance(entry, dict):
            raise InvalidInputError(f"Rating for '{category}' must be an object")
        score = entry.get("score")
        if not isinstance(score, int) or isinstance(score, bool) or not 1 <= score <= 5:
            raise InvalidInputError(f"Score for '{category}' must be an integer between 1 and 5")
        cleaned[category] = {"score": score, "comment": entry.get("comment") or ""}
    return cleaned


def overall_rating(ratings: dict[str, dict]) -> float | None:
    scores = [entry["score"] for entry in ratings.values()]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 2)


def goal_status_for(progress: int) -> str:
    if progress <= 0:
        return GoalStatus.NOT_STARTED
    if progress >= 100:
        return GoalStatus.COMPLETED
    return GoalStatus.IN_PROGRESS


def _validate_period(start: datetime, end: datetime) -> None:
    start, end = as_utc(start), as_utc(end)
    if start >= end:
        raise InvalidInputError("Review period start must be before its end")
    if end - start > timedelta(days=MAX_REVIEW_PERIOD_DAYS):
        raise InvalidInputError(f"Review period cannot exceed {MAX_REVIEW_PERIOD_DAYS} days")


def goal_to_dict(goal: HRPerformanceGoal) -> dict:
    return {
        "id": goal.id,
        "review_id": goal.review_id,
        "user_id": goal.user_id,
        "title": goal.title,
        "description": goal.description,
        "target_date": iso(goal.target_date),
        "status": str(goal.status),
        "progress_percentage": goal.progress_percentage,
        "created_at": iso(goal.created_at),
    }


def review_to_dict(review: HRPerformanceReview, goals: list[HRPerformanceGoal] | None = None) -> dict:
    data = {
        "id": review.id,
        "organization_id": review.organization_id,
        "reviewee_id": review.reviewee_id,
        "reviewer_id": review.reviewer_id,
        "review_period_start": iso(review.review_period_start),
        "review_period_end": iso(review.review_period_end),
        "status": str(review.status),
        "ratings": dict(review.ratings or {}),
        "overall_rating": review.overall_rating,
        "strengths": list(review.strengths or []),
        "areas_for_improvement": list(review.areas_for_improvement or []),
        "submitted_at": iso(review.submitted_at),
        "acknowledged_at": iso(review.acknowledged_at),
        "created_at": iso(review.created_at),
        "updated_at": iso(review.updated_at),
    }
    if goals is not None:
        data["goals"] = [goal_to_dict(g) for g in goals]
    return data


def _get_review(session: Session, review_id: str) -> HRPerformanceReview:
    review = session.get(HRPerformanceReview, review_id)
    if review is None:
        raise NotFoundError("Performance review not found")
    return review


def _goals(session: Session, review_id: str) -> list[HRPerformanceGoal]:
    return list(session.scalars(
        select(HRPerformanceGoal)
        .where(HRPerformanceGoal.review_id == review_id)
        .order_by(HRPerformanceGoal.created_at)
    ))


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
def create_review(
    engine: Engine,
    organization_id: str,
    reviewer_id: str,
    *,
    reviewee_id: str,
    review_period_start: datetime,
    review_period_end: datetime,
    ratings: dict[str, Any] | None = None,
    strengths: list[str] | None = None,
    areas_for_improvement: list[str] | None = None,
) -> dict:
    if reviewer_id == reviewee_id:
        raise InvalidInputError("You cannot review yourself")
    _validate_period(review_period_start, review_period_end)
    cleaned = validate_ratings(ratings or {})

    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(
            session, org, reviewer_id,
            Permission.CONDUCT_PERFORMANCE_REVIEWS, Permission.MANAGE_HR_PERFORMANCE,
        )
        if active_member(session, org.id, reviewee_id) is None:
            raise InvalidInputError("Reviewee is not a member of this organization")

        start, end = as_utc(review_period_start), as_utc(review_period_end)
        existing = session.scalars(
            select(HRPerformanceReview).where(
                HRPerformanceReview.organization_id == org.id,
                HRPerformanceReview.reviewee_id == reviewee_id,
            )
        ).all()
        for other in existing:
            if as_utc(other.review_period_start) < end and start < as_utc(other.review_period_end):
                raise ConflictError("A review already covers part of this period")

        review = HRPerformanceReview(
            organization_id=org.id,
            reviewee_id=reviewee_id,
            reviewer_id=reviewer_id,
            review_period_start=start,
            review_period_end=end,
            status=ReviewStatus.DRAFT,
            ratings=cleaned,
            overall_rating=overall_rating(cleaned),
            strengths=list(strengths or []),
            areas_for_improvement=list(areas_for_improvement or []),
        )
        session.add(review)
        session.flush()
        log_action(
            session,
            actor_id=reviewer_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_performance_reviews",
            target_id=review.id,
            before=None,
            after=row_to_dict(review),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Performance review %s created for %s by %s", review.id, reviewee_id, reviewer_id)
        return review_to_dict(review, [])


def update_review(
    engine: Engine,
    review_id: str,
    reviewer_id: str,
    *,
    ratings: dict[str, Any] | None = None,
    strengths: list[str] | None = None,
    areas_for_improvement: list[str] | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        review = _get_review(session, review_id)
        if review.reviewer_id != reviewer_id:
            raise PermissionDeniedError("Only the reviewer can edit this review")
        if review.status != ReviewStatus.DRAFT:
            raise InvalidInputError("Only draft reviews can be edited")

        before = row_to_dict(review)
        if ratings is not None:
            cleaned = validate_ratings(ratings)
            review.ratings = cleaned
            review.overall_rating = overall_rating(cleaned)
        if strengths is not None:
            review.strengths = list(strengths)
        if areas_for_improvement is not None:
            review.areas_for_improvement = list(areas_for_improvement)
        session.flush()
        log_action(
            session,
            actor_id=reviewer_id,
            action_type=AuditActionType.UPDATE,
            target_table="hr_performance_reviews",
            target_id=review.id,
            before=before,
            after=row_to_dict(review),
            organization_id=review.organization_id,
        )
        session.commit()
        return review_to_dict(review, _goals(session, review.id))


def _advance(
    engine: Engine,
    review_id: str,
    actor_id: str,
    *,
    from_status: str,
    to_status: str,
    actor_field: str,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        review = _get_review(session, review_id)
        if getattr(review, actor_field) != actor_id:
            raise PermissionDeniedError("You cannot change the status of this review")
        if review.status != from_status:
            raise InvalidInputError(f"Review must be {from_status} (currently {review.status})")

        before = row_to_dict(review)
        review.status = to_status
        now = utcnow()
        if to_status == ReviewStatus.SUBMITTED:
            review.submitted_at = now
        else:
            review.acknowledged_at = now
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.STATUS_CHANGE,
            target_table="hr_performance_reviews",
            target_id=review.id,
            before=before,
            after=row_to_dict(review),
            organization_id=review.organization_id,
        )
        session.commit()
        logger.info("Performance review %s → %s", review.id, to_status)
        return review_to_dict(review, _goals(session, review.id))


def submit_review(engine: Engine, review_id: str, reviewer_id: str) -> dict:
    return _advance(
        engine, review_id, reviewer_id,
        from_status=ReviewStatus.DRAFT, to_status=ReviewStatus.SUBMITTED, actor_field="reviewer_id",
    )


def acknowledge_review(engine: Engine, review_id: str, reviewee_id: str) -> dict:
    return _advance(
        engine, review_id, reviewee_id,
        from_status=ReviewStatus.SUBMITTED, to_status=ReviewStatus.ACKNOWLEDGED, actor_field="reviewee_id",
    )


def get_review(engine: Engine, review_id: str) -> dict:
    with Session(engine) as session:
        review = _get_review(session, review_id)
        return review_to_dict(review, _goals(session, review.id))


def list_reviews(
    engine: Engine,
    organization_id: str,
    *,
    reviewee_id: str | None = None,
    status: str | None = None,
) -> list[dict]:
    with Session(engine) as session:
        stmt = select(HRPerformanceReview).where(HRPerformanceReview.organization_id == organization_id)
        if reviewee_id:
            stmt = stmt.where(HRPerformanceReview.reviewee_id == reviewee_id)
        if status:
            stmt = stmt.where(HRPerformanceReview.status == status)
        reviews = session.scalars(stmt.order_by(HRPerformanceReview.review_period_end.desc())).all()
        return [review_to_dict(r) for r in reviews]


def next_review_due(
    engine: Engine,
    organization_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> str:
    """ISO timestamp of when *user_id* should next be reviewed."""
    now = now or utcnow()
    with Session(engine) as session:
        last_end = session.scalar(
            select(HRPerformanceReview.review_period_end)
            .where(
                HRPerformanceReview.organization_id == organization_id,
                HRPerformanceReview.reviewee_id == user_id,
            )
            .order_by(HRPerformanceReview.review_period_end.desc())
            .limit(1)
        )
    if last_end is None:
        return (now + timedelta(days=FIRST_REVIEW_DUE_DAYS)).isoformat()
    return (as_utc(last_end) + timedelta(days=REVIEW_CYCLE_DAYS)).isoformat()


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------
def add_goal(
    engine: Engine,
    review_id: str,
    actor_id: str,
    *,
    title: str,
    description: str | None = None,
    target_date: datetime | None = None,
) -> dict:
    if not title.strip():
        raise InvalidInputError("Goal title is required")
    with Session(engine, expire_on_commit=False) as session:
        review = _get_review(session, review_id)
        if actor_id != review.reviewer_id:
            raise PermissionDeniedError("Only the reviewer can add goals")
        goal = HRPerformanceGoal(
            review_id=review.id,
            user_id=review.reviewee_id,
            title=title.strip(),
            description=description,
            target_date=target_date,
            status=GoalStatus.NOT_STARTED,
            progress_percentage=0,
        )
        session.add(goal)
        session.commit()
        return goal_to_dict(goal)


def update_goal_progress(
    engine: Engine,
    goal_id: str,
    actor_id: str,
    progress: int,
    *,
    organization_id: str | None = None,
) -> dict:
    if not isinstance(progress, int) or isinstance(progress, bool) or not 0 <= progress <= 100:
        raise InvalidInputError("Progress must be an integer between 0 and 100")
    with Session(engine, expire_on_commit=False) as session:
        goal = session.get(HRPerformanceGoal, goal_id)
        review = session.get(HRPerformanceReview, goal.review_id) if goal is not None else None
        if review is None or (organization_id and review.organization_id != organization_id):
            raise NotFoundError("Goal not found")
        if actor_id not in (goal.user_id, review.reviewer_id):
            raise PermissionDeniedError("You cannot update this goal")
        goal.progress_percentage = progress
        goal.status = goal_status_for(progress)
        session.commit()
        return goal_to_dict(goal)

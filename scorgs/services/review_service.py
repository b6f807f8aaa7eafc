"""
scorgs.services.review_service — Post-event reviews
====================================================

Anyone who held a non-cancelled registration may review an event once it
has started.  Anonymous reviews keep the author on the row (for the
one-review rule) but hide it from every listing.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.constants import MAX_EVENT_REVIEW_LENGTH
from scorgs.database.models import Event, EventRegistration, EventReview, RegistrationStatus, User, utcnow
from scorgs.errors import InvalidInputError, NotFoundError
from scorgs.services.common import as_utc, iso

logger = logging.getLogger(__name__)

ELIGIBLE_STATUSES = (
    RegistrationStatus.REGISTERED,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.ATTENDED,
)


def _eligibility(session: Session, event_id: str, user_id: str, now: datetime) -> dict:
    event = session.get(Event, event_id)
    if event is None:
        return {"can_review": False, "reason": "Event not found"}
    if now < as_utc(event.start_time):
        return {"can_review": False, "reason": "Event has not started yet"}

    attended = session.scalar(
        select(EventRegistration.id).where(
            EventRegistration.event_id == event_id,
            EventRegistration.user_id == user_id,
            EventRegistration.status.in_([str(s) for s in ELIGIBLE_STATUSES]),
        )
    )
    if attended is None:
        return {"can_review": False, "reason": "You did not attend this event"}

    reviewed = session.scalar(
        select(EventReview.id).where(
            EventReview.event_id == event_id,
            EventReview.user_id == user_id,
        )
    )
    if reviewed is not None:
        return {"can_review": False, "reason": "You have already reviewed this event"}
    return {"can_review": True, "reason": None}


def check_review_eligibility(
    engine: Engine,
    event_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    with Session(engine) as session:
        return _eligibility(session, event_id, user_id, now or utcnow())


def create_review(
    engine: Engine,
    event_id: str,
    user_id: str,
    *,
    rating: int,
    review_text: str | None = None,
    is_anonymous: bool = False,
    now: datetime | None = None,
) -> dict:
    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise InvalidInputError("Rating must be an integer between 1 and 5")
    if review_text is not None and len(review_text) > MAX_EVENT_REVIEW_LENGTH:
        raise InvalidInputError(
            f"Review text must be at most {MAX_EVENT_REVIEW_LENGTH} characters"
        )

    with Session(engine, expire_on_commit=False) as session:
        check = _eligibility(session, event_id, user_id, now or utcnow())
        if not check["can_review"]:
            if check["reason"] == "Event not found":
                raise NotFoundError(check["reason"])
            raise InvalidInputError(check["reason"])

        review = EventReview(
            event_id=event_id,
            user_id=user_id,
            rating=rating,
            review_text=review_text or None,
            is_anonymous=is_anonymous,
        )
        session.add(review)
        session.commit()
        logger.info("Review (%d★) for event %s by %s", rating, event_id, user_id)
        return _review_to_dict(review, None)


def _review_to_dict(review: EventReview, username: str | None) -> dict:
    return {
        "id": review.id,
        "event_id": review.event_id,
        "user_id": None if review.is_anonymous else review.user_id,
        "username": None if review.is_anonymous else username,
        "rating": review.rating,
        "review_text": review.review_text,
        "is_anonymous": review.is_anonymous,
        "created_at": iso(review.created_at),
    }


def list_reviews(engine: Engine, event_id: str) -> list[dict]:
    with Session(engine) as session:
        rows = session.execute(
            select(EventReview, User.username)
            .join(User, User.id == EventReview.user_id)
            .where(EventReview.event_id == event_id)
            .order_by(EventReview.created_at.desc())
        ).all()
        return [_review_to_dict(r, name) for r, name in rows]


def _stats(ratings: list[int]) -> dict:
    breakdown = {str(star): 0 for star in range(5, 0, -1)}
    for rating in ratings:
        breakdown[str(rating)] += 1
    average = round(sum(ratings) / len(ratings), 2) if ratings else 0.0
    return {
        "average_rating": average,
        "total_reviews": len(ratings),
        "rating_breakdown": breakdown,
    }


def review_stats(engine: Engine, event_id: str) -> dict:
    with Session(engine) as session:
        ratings = list(session.scalars(
            select(EventReview.rating).where(EventReview.event_id == event_id)
        ))
    return _stats(ratings)


def organization_rating_summary(engine: Engine, organization_id: str) -> dict:
    """Aggregate rating over every event the organization has run."""
    with Session(engine) as session:
        rows = session.execute(
            select(EventReview, Event.title, User.username)
            .join(Event, Event.id == EventReview.event_id)
            .join(User, User.id == EventReview.user_id)
            .where(Event.organization_id == organization_id)
            .order_by(EventReview.created_at.desc())
        ).all()

    summary = _stats([review.rating for review, _, _ in rows])
    summary["events_reviewed"] = len({review.event_id for review, _, _ in rows})
    summary["recent_reviews"] = [
        {**_review_to_dict(review, username), "event_title": title}
        for review, title, username in rows[:5]
    ]
    return summary

"""
scorgs.services.comment_service — Comments on organization pages
==================================================================

Any signed-in user may comment on an active organization.  Threads are one
level deep: a reply to a reply is attached to the top-level comment.

Authors edit and delete their own comments; members holding one of the
comment moderation permissions may delete anyone's.  Votes toggle: voting
the same way twice removes the vote, voting the other way flips it.  The
``upvotes`` / ``downvotes`` columns are recounted from ``comment_votes``
on every change.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from scorgs.constants import MAX_COMMENT_LENGTH, Permission
from scorgs.database.models import (
    AuditActionType,
    Comment,
    CommentVote,
    Organization,
    User,
    VoteType,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import get_organization, iso, log_action, paginate, row_to_dict
from scorgs.services.notification_service import notify
from scorgs.services.role_service import has_permission

logger = logging.getLogger(__name__)

MODERATION_PERMISSIONS = (
    Permission.MANAGE_COMMENTS,
    Permission.MODERATE_COMMENTS,
    Permission.DELETE_COMMENTS,
)
SORTS = {
    "newest": (Comment.created_at.desc(),),
    "oldest": (Comment.created_at.asc(),),
    "top": ((Comment.upvotes - Comment.downvotes).desc(), Comment.created_at.desc()),
}


def _clean(content: str | None) -> str:
    content = (content or "").strip()
    if not content:
        raise InvalidInputError("Comment cannot be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise InvalidInputError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
    return content


def _get_comment(session: Session, comment_id: str) -> Comment:
    comment = session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


def _org_data(org: Organization) -> dict:
    return {"organization_id": org.id, "rsi_org_id": org.rsi_org_id, "organization_name": org.name}


def comment_to_dict(
    comment: Comment,
    user: User | None = None,
    *,
    reply_count: int = 0,
    user_vote: str | None = None,
) -> dict:
    return {
        "id": comment.id,
        "organization_id": comment.organization_id,
        "parent_id": comment.parent_id,
        "user_id": comment.user_id,
        "username": user.username if user else None,
        "rsi_handle": user.rsi_handle if user else None,
        "avatar_url": user.avatar_url if user else None,
        "content": comment.content,
        "upvotes": comment.upvotes or 0,
        "downvotes": comment.downvotes or 0,
        "score": (comment.upvotes or 0) - (comment.downvotes or 0),
        "is_edited": comment.is_edited,
        "reply_count": reply_count,
        "user_vote": user_vote,
        "created_at": iso(comment.created_at),
        "updated_at": iso(comment.updated_at),
    }


def _render(session: Session, comments: list[Comment], viewer_id: str | None) -> list[dict]:
    ids = [c.id for c in comments]
    if not ids:
        return []
    users = {u.id: u for u in session.scalars(select(User).where(User.id.in_({c.user_id for c in comments})))}
    replies = dict(session.execute(
        select(Comment.parent_id, func.count(Comment.id))
        .where(Comment.parent_id.in_(ids))
        .group_by(Comment.parent_id)
    ).all())
    votes = {}
    if viewer_id:
        votes = dict(session.execute(
            select(CommentVote.comment_id, CommentVote.vote_type)
            .where(CommentVote.comment_id.in_(ids), CommentVote.user_id == viewer_id)
        ).all())
    return [
        comment_to_dict(c, users.get(c.user_id), reply_count=replies.get(c.id, 0), user_vote=votes.get(c.id))
        for c in comments
    ]


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------
def create_comment(
    engine: Engine,
    organization_id: str,
    user_id: str,
    content: str,
    *,
    parent_id: str | None = None,
) -> dict:
    content = _clean(content)
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        parent = None
        if parent_id is not None:
            parent = _get_comment(session, parent_id)
            if parent.organization_id != org.id:
                raise NotFoundError("Comment not found")
            if parent.parent_id is not None:
                parent = _get_comment(session, parent.parent_id)

        comment = Comment(
            organization_id=org.id,
            user_id=user_id,
            parent_id=parent.id if parent else None,
            content=content,
        )
        session.add(comment)
        session.flush()

        data = {**_org_data(org), "comment_id": comment.id}
        if parent is not None:
            notify(
                session,
                entity_type=NT.COMMENT_REPLIED,
                entity_id=comment.id,
                actor_id=user_id,
                notifier_ids=[parent.user_id],
                custom_data={**data, "parent_id": parent.id},
            )
        else:
            notify(
                session,
                entity_type=NT.COMMENT_CREATED,
                entity_id=comment.id,
                actor_id=user_id,
                notifier_ids=[org.owner_id],
                custom_data=data,
            )
        session.commit()
        logger.info("Comment %s on %s by %s", comment.id, org.rsi_org_id, user_id)
        return _render(session, [comment], user_id)[0]


def update_comment(engine: Engine, comment_id: str, user_id: str, content: str) -> dict:
    content = _clean(content)
    with Session(engine, expire_on_commit=False) as session:
        comment = _get_comment(session, comment_id)
        if comment.user_id != user_id:
            raise PermissionDeniedError("Only the author can edit this comment")
        if comment.content == content:
            return _render(session, [comment], user_id)[0]

        comment.content = content
        comment.is_edited = True
        comment.updated_at = utcnow()
        org = session.get(Organization, comment.organization_id)
        repliers = session.scalars(
            select(Comment.user_id).where(Comment.parent_id == comment.id).distinct()
        ).all()
        notify(
            session,
            entity_type=NT.COMMENT_UPDATED,
            entity_id=comment.id,
            actor_id=user_id,
            notifier_ids=repliers,
            custom_data={**_org_data(org), "comment_id": comment.id},
        )
        session.commit()
        return _render(session, [comment], user_id)[0]


def delete_comment(engine: Engine, comment_id: str, actor_id: str) -> None:
    """Delete a comment and its replies; authors or moderators only."""
    with Session(engine) as session:
        comment = _get_comment(session, comment_id)
        org = session.get(Organization, comment.organization_id)
        if comment.user_id != actor_id and not any(
            has_permission(session, org, actor_id, p) for p in MODERATION_PERMISSIONS
        ):
            raise PermissionDeniedError("You cannot delete this comment")

        before = row_to_dict(comment)
        thread = [comment.id, *session.scalars(select(Comment.id).where(Comment.parent_id == comment.id))]
        session.execute(delete(CommentVote).where(CommentVote.comment_id.in_(thread)))
        session.execute(delete(Comment).where(Comment.parent_id == comment.id))
        session.delete(comment)
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.DELETE,
            target_table="comments",
            target_id=comment_id,
            before=before,
            after=None,
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.COMMENT_DELETED,
            entity_id=comment_id,
            actor_id=actor_id,
            notifier_ids=[before["user_id"]],
            custom_data=_org_data(org),
        )
        session.commit()
        logger.info("Comment %s (+%d replies) deleted by %s", comment_id, len(thread) - 1, actor_id)


def _recount(session: Session, comment: Comment) -> None:
    session.flush()
    counts = dict(session.execute(
        select(CommentVote.vote_type, func.count(CommentVote.id))
        .where(CommentVote.comment_id == comment.id)
        .group_by(CommentVote.vote_type)
    ).all())
    comment.upvotes = counts.get(VoteType.UPVOTE, 0)
    comment.downvotes = counts.get(VoteType.DOWNVOTE, 0)


def vote_comment(engine: Engine, comment_id: str, user_id: str, vote_type: str) -> dict:
    """Toggle *vote_type* on a comment; returns the new counts and the caller's vote."""
    if vote_type not in (VoteType.UPVOTE, VoteType.DOWNVOTE):
        raise InvalidInputError("vote_type must be 'upvote' or 'downvote'")
    with Session(engine, expire_on_commit=False) as session:
        comment = _get_comment(session, comment_id)
        vote = session.scalar(
            select(CommentVote).where(CommentVote.comment_id == comment.id, CommentVote.user_id == user_id)
        )
        if vote is not None and vote.vote_type == vote_type:
            session.delete(vote)
            current = None
        elif vote is not None:
            vote.vote_type = vote_type
            current = vote_type
        else:
            session.add(CommentVote(comment_id=comment.id, user_id=user_id, vote_type=vote_type))
            current = vote_type
            if vote_type == VoteType.UPVOTE:
                org = session.get(Organization, comment.organization_id)
                notify(
                    session,
                    entity_type=NT.COMMENT_VOTED,
                    entity_id=comment.id,
                    actor_id=user_id,
                    notifier_ids=[comment.user_id],
                    custom_data={**_org_data(org), "comment_id": comment.id},
                )
        _recount(session, comment)
        session.commit()
        return {
            "comment_id": comment.id,
            "upvotes": comment.upvotes,
            "downvotes": comment.downvotes,
            "user_vote": current,
        }


def remove_vote(engine: Engine, comment_id: str, user_id: str) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        comment = _get_comment(session, comment_id)
        vote = session.scalar(
            select(CommentVote).where(CommentVote.comment_id == comment.id, CommentVote.user_id == user_id)
        )
        if vote is None:
            raise NotFoundError("You have not voted on this comment")
        session.delete(vote)
        _recount(session, comment)
        session.commit()
        return {"comment_id": comment.id, "upvotes": comment.upvotes, "downvotes": comment.downvotes,
                "user_vote": None}


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def list_comments(
    engine: Engine,
    organization_id: str,
    *,
    viewer_id: str | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Top-level comments with reply counts; replies come from :func:`list_replies`."""
    if sort not in SORTS:
        raise InvalidInputError(f"sort must be one of: {', '.join(SORTS)}")
    offset, limit = paginate(page, limit)
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        base = select(Comment).where(Comment.organization_id == org.id, Comment.parent_id.is_(None))
        total = session.scalar(select(func.count()).select_from(base.subquery())) or 0
        comments = session.scalars(
            base.order_by(*SORTS[sort], Comment.id).offset(offset).limit(limit)
        ).all()
        rendered = _render(session, list(comments), viewer_id)
    return {
        "comments": rendered,
        "total": total,
        "page": max(1, page),
        "limit": limit,
        "has_more": offset + len(rendered) < total,
    }


def list_replies(engine: Engine, comment_id: str, *, viewer_id: str | None = None) -> list[dict]:
    """Replies oldest first."""
    with Session(engine) as session:
        parent = _get_comment(session, comment_id)
        replies = session.scalars(
            select(Comment).where(Comment.parent_id == parent.id).order_by(Comment.created_at.asc(), Comment.id)
        ).all()
        return _render(session, list(replies), viewer_id)


def get_comment(engine: Engine, comment_id: str, *, viewer_id: str | None = None) -> dict:
    with Session(engine) as session:
        return _render(session, [_get_comment(session, comment_id)], viewer_id)[0]

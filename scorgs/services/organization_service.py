"""
scorgs.services.organization_service — Organization registry
=============================================================

Organizations are keyed by their RSI Spectrum ID (stored upper-case).
Registration is proof-of-control: the registering user pastes their
verification sentinel somewhere on the RSI organization page, we scrape the
page, and only create the row when the sentinel is found.

The scrape itself happens in the caller (the API route awaits
:class:`scorgs.clients.rsi.RSIClient`); functions here receive the parsed
:class:`~scorgs.clients.rsi.RSIOrganizationPage` so they stay synchronous
and testable without a network.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, delete, func, or_, select
from sqlalchemy.orm import Session

from scorgs.clients.rsi import RSIOrganizationPage
from scorgs.config import DEFAULT_CONFIG
from scorgs.constants import OWNER_ROLE_NAME, Permission
from scorgs.database.models import (
    AuditActionType,
    Organization,
    OrganizationMember,
    OrganizationRole,
    OrganizationUpvote,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import (
    apply_updates,
    as_utc,
    find_organization_by_rsi_id,
    iso,
    log_action,
    paginate,
    row_to_dict,
)
from scorgs.services.notification_service import SYSTEM_ACTOR_ID, notify
from scorgs.services.role_service import (
    active_member,
    create_default_roles,
    member_ids,
    require_permission,
)
from scorgs.services.verification import generate_org_sentinel, generate_verification_code

logger = logging.getLogger(__name__)

FROZEN_KEYS = ("id", "rsi_org_id", "owner_id", "verification_sentinel")

SORT_COLUMNS = {
    "total_upvotes": Organization.total_upvotes,
    "created_at": Organization.created_at,
    "name": Organization.name,
}


def org_to_dict(org: Organization) -> dict:
    return {
        "id": org.id,
        "rsi_org_id": org.rsi_org_id,
        "name": org.name,
        "description": org.description,
        "headline": org.headline,
        "icon_url": org.icon_url,
        "banner_url": org.banner_url,
        "is_registered": org.is_registered,
        "owner_id": org.owner_id,
        "languages": list(org.languages or []),
        "playstyle_tags": list(org.playstyle_tags or []),
        "focus_tags": list(org.focus_tags or []),
        "total_upvotes": org.total_upvotes,
        "total_members": org.total_members,
        "discord_integration_enabled": org.discord_integration_enabled,
        "created_at": iso(org.created_at),
        "updated_at": iso(org.updated_at),
    }


def _require_org(session: Session, rsi_org_id: str) -> Organization:
    org = find_organization_by_rsi_id(session, rsi_org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


def _apply_scrape(org: Organization, scraped: RSIOrganizationPage) -> None:
    org.name = scraped.name or org.name
    org.headline = scraped.headline
    org.description = scraped.description
    org.icon_url = scraped.icon_url
    org.banner_url = scraped.banner_url
    if not org.languages:
        org.languages = list(scraped.languages)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def create_organization(
    engine: Engine,
    user_id: str,
    rsi_org_id: str,
    scraped: RSIOrganizationPage,
    *,
    languages: list[str] | None = None,
    playstyle_tags: list[str] | None = None,
    focus_tags: list[str] | None = None,
) -> dict:
    """Register an organization after confirming the user's sentinel.

    Raises
    ------
    ConflictError
        The Spectrum ID is already registered.
    InvalidInputError
        The user's verification code is not on the organization page.  The
        code is attached as ``verification_code`` so the client can show it.
    """
    rsi_org_id = rsi_org_id.strip().upper()
    with Session(engine, expire_on_commit=False) as session:
        existing = session.scalar(
            select(Organization).where(Organization.rsi_org_id == rsi_org_id)
        )
        if existing is not None:
            raise ConflictError("Organization already registered")

        code = generate_verification_code(user_id)
        if not scraped.contains_code(code):
            logger.warning("Org %s registration by %s: sentinel not found", rsi_org_id, user_id)
            raise InvalidInputError(
                "Verification code not found on the organization page. "
                "Add it to the organization's description and try again.",
                verification_code=code,
            )

        org = Organization(
            rsi_org_id=rsi_org_id,
            owner_id=user_id,
            name=scraped.name or rsi_org_id,
            is_registered=True,
            verification_sentinel=generate_org_sentinel(),
            languages=list(languages or scraped.languages),
            playstyle_tags=list(playstyle_tags or []),
            focus_tags=list(focus_tags or []),
            total_members=1,
        )
        _apply_scrape(org, scraped)
        session.add(org)
        session.flush()

        roles = create_default_roles(session, org.id)
        session.add(OrganizationMember(
            organization_id=org.id,
            user_id=user_id,
            role_id=roles[OWNER_ROLE_NAME].id,
        ))
        session.flush()

        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.CREATE,
            target_table="organizations",
            target_id=org.id,
            before=None,
            after=row_to_dict(org),
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.ORGANIZATION_CREATED,
            entity_id=org.id,
            actor_id=SYSTEM_ACTOR_ID,
            notifier_ids=[user_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id},
        )
        session.commit()
        logger.info("Organization %s registered by %s", rsi_org_id, user_id)
        result = org_to_dict(org)
        result["member_count"] = scraped.member_count
        return result


def verify_organization(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    scraped: RSIOrganizationPage,
) -> dict:
    """Re-check the stored sentinel against a fresh scrape (owner only)."""
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        if org.owner_id != user_id:
            raise PermissionDeniedError("Only the organization owner can verify it")
        if not org.verification_sentinel:
            raise InvalidInputError("No verification sentinel has been issued for this organization")
        if not scraped.contains_code(org.verification_sentinel):
            logger.warning("Org %s verification: sentinel not found", org.rsi_org_id)
            raise InvalidInputError(
                "Verification sentinel not found on the organization page",
                verification_code=org.verification_sentinel,
            )

        before = row_to_dict(org)
        org.is_registered = True
        _apply_scrape(org, scraped)
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.VERIFY,
            target_table="organizations",
            target_id=org.id,
            before=before,
            after=row_to_dict(org),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Organization %s verified", org.rsi_org_id)
        return org_to_dict(org)


# ---------------------------------------------------------------------------
# Read / update / delete
# ---------------------------------------------------------------------------
def get_organization(engine: Engine, rsi_org_id: str) -> dict:
    with Session(engine) as session:
        return org_to_dict(_require_org(session, rsi_org_id))


def get_verification_sentinel(engine: Engine, rsi_org_id: str, user_id: str) -> str:
    with Session(engine) as session:
        org = _require_org(session, rsi_org_id)
        if org.owner_id != user_id:
            raise PermissionDeniedError("Only the organization owner can view the sentinel")
        return org.verification_sentinel or ""


def update_organization(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    updates: dict[str, Any],
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        require_permission(session, org, user_id, Permission.UPDATE_ORGANIZATION)

        before = row_to_dict(org)
        changed = apply_updates(org, updates, frozen_keys=FROZEN_KEYS)
        if not changed:
            return org_to_dict(org)
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.UPDATE,
            target_table="organizations",
            target_id=org.id,
            before=before,
            after=row_to_dict(org),
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.ORGANIZATION_UPDATED,
            entity_id=org.id,
            actor_id=user_id,
            notifier_ids=member_ids(session, org.id),
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id},
        )
        session.commit()
        logger.info("Organization %s updated by %s: %s", org.rsi_org_id, user_id, changed)
        return org_to_dict(org)


def delete_organization(engine: Engine, rsi_org_id: str, user_id: str) -> None:
    """Soft delete; the row stays for audit and history."""
    with Session(engine) as session:
        org = _require_org(session, rsi_org_id)
        require_permission(session, org, user_id, Permission.DELETE_ORGANIZATION)

        before = row_to_dict(org)
        org.is_active = False
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.DELETE,
            target_table="organizations",
            target_id=org.id,
            before=before,
            after=row_to_dict(org),
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.ORGANIZATION_DELETED,
            entity_id=org.id,
            actor_id=user_id,
            notifier_ids=member_ids(session, org.id),
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id},
        )
        session.commit()
        logger.info("Organization %s deleted by %s", org.rsi_org_id, user_id)


def list_organizations(
    engine: Engine,
    *,
    is_registered: bool | None = None,
    languages: list[str] | None = None,
    playstyle_tags: list[str] | None = None,
    focus_tags: list[str] | None = None,
    search: str | None = None,
    sort_by: str = "total_upvotes",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Filtered, paginated directory listing.

    Tag and language filters match when the organization carries *any* of
    the requested values.  They are applied after the SQL query because the
    list columns are JSON.
    """
    offset, limit = paginate(page, limit)
    column = SORT_COLUMNS.get(sort_by, Organization.total_upvotes)
    order = column.asc() if sort_order == "asc" else column.desc()

    with Session(engine) as session:
        stmt = select(Organization).where(Organization.is_active.is_(True))
        if is_registered is not None:
            stmt = stmt.where(Organization.is_registered.is_(is_registered))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                Organization.name.ilike(pattern),
                Organization.rsi_org_id.ilike(pattern),
                Organization.headline.ilike(pattern),
                Organization.description.ilike(pattern),
            ))
        orgs = session.scalars(stmt.order_by(order, Organization.id)).all()

    def _matches(values: list | None, wanted: list[str] | None) -> bool:
        if not wanted:
            return True
        return bool(set(values or []) & set(wanted))

    matched = [
        o for o in orgs
        if _matches(o.languages, languages)
        and _matches(o.playstyle_tags, playstyle_tags)
        and _matches(o.focus_tags, focus_tags)
    ]
    window = matched[offset:offset + limit]
    return {
        "organizations": [org_to_dict(o) for o in window],
        "total": len(matched),
        "page": offset // limit + 1,
        "limit": limit,
    }


# ---------------------------------------------------------------------------
# Upvotes
# ---------------------------------------------------------------------------
def _latest_upvote(session: Session, organization_id: str, user_id: str) -> OrganizationUpvote | None:
    return session.scalar(
        select(OrganizationUpvote)
        .where(
            OrganizationUpvote.organization_id == organization_id,
            OrganizationUpvote.user_id == user_id,
        )
        .order_by(OrganizationUpvote.created_at.desc())
        .limit(1)
    )


def get_upvote_status(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    *,
    cooldown_days: int = DEFAULT_CONFIG.upvote_cooldown_days,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    with Session(engine) as session:
        org = _require_org(session, rsi_org_id)
        latest = _latest_upvote(session, org.id, user_id)
        if latest is None:
            return {"has_upvoted": False, "can_upvote": True, "next_upvote_at": None,
                    "total_upvotes": org.total_upvotes}
        next_at = as_utc(latest.created_at) + timedelta(days=cooldown_days)
        inside = now < next_at
        return {
            "has_upvoted": inside,
            "can_upvote": not inside,
            "next_upvote_at": next_at.isoformat() if inside else None,
            "total_upvotes": org.total_upvotes,
        }


def _count_upvotes(session: Session, organization_id: str) -> int:
    return session.scalar(
        select(func.count(OrganizationUpvote.id)).where(
            OrganizationUpvote.organization_id == organization_id
        )
    ) or 0


def upvote_organization(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    *,
    cooldown_days: int = DEFAULT_CONFIG.upvote_cooldown_days,
    now: datetime | None = None,
) -> dict:
    """One upvote per user per organization, renewable once per cooldown window.

    A renewal replaces the user's previous upvote, so ``total_upvotes`` is
    the number of distinct upvoters.
    """
    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        latest = _latest_upvote(session, org.id, user_id)
        if latest is not None:
            next_at = as_utc(latest.created_at) + timedelta(days=cooldown_days)
            if now < next_at:
                raise ConflictError(
                    "You have already upvoted this organization recently",
                    next_upvote_at=next_at.isoformat(),
                )

        session.execute(
            delete(OrganizationUpvote).where(
                OrganizationUpvote.organization_id == org.id,
                OrganizationUpvote.user_id == user_id,
            )
        )
        session.add(OrganizationUpvote(organization_id=org.id, user_id=user_id, created_at=now))
        session.flush()
        org.total_upvotes = _count_upvotes(session, org.id)
        session.commit()
        logger.info("Org %s upvoted by %s (total %d)", org.rsi_org_id, user_id, org.total_upvotes)
        return {"total_upvotes": org.total_upvotes}


def remove_upvote(
    engine: Engine,
    rsi_org_id: str,
    user_id: str,
    *,
    cooldown_days: int = DEFAULT_CONFIG.upvote_cooldown_days,
    now: datetime | None = None,
) -> dict:
    """Withdraw the current-window upvote; older upvotes are permanent."""
    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        org = _require_org(session, rsi_org_id)
        latest = _latest_upvote(session, org.id, user_id)
        if latest is None or now >= as_utc(latest.created_at) + timedelta(days=cooldown_days):
            raise InvalidInputError("No upvote to remove in the current window")
        session.delete(latest)
        session.flush()
        org.total_upvotes = _count_upvotes(session, org.id)
        session.commit()
        return {"total_upvotes": org.total_upvotes}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------
def list_members(engine: Engine, rsi_org_id: str, viewer_id: str | None = None) -> list[dict]:
    """Active members, highest rank first then longest-serving.

    Hidden members are only shown to other members of the organization.
    """
    with Session(engine) as session:
        org = _require_org(session, rsi_org_id)
        viewer_is_member = bool(viewer_id) and active_member(session, org.id, viewer_id) is not None

        rows = session.execute(
            select(OrganizationMember, OrganizationRole, User)
            .join(OrganizationRole, OrganizationRole.id == OrganizationMember.role_id)
            .join(User, User.id == OrganizationMember.user_id)
            .where(
                OrganizationMember.organization_id == org.id,
                OrganizationMember.is_active.is_(True),
            )
            .order_by(OrganizationRole.rank.desc(), OrganizationMember.joined_at.asc())
        ).all()

        members = []
        for member, role, user in rows:
            if member.is_hidden and not viewer_is_member:
                continue
            members.append({
                "user_id": user.id,
                "username": user.username,
                "avatar_url": user.avatar_url,
                "rsi_handle": user.rsi_handle,
                "is_rsi_verified": user.is_rsi_verified,
                "role_id": role.id,
                "role_name": role.name,
                "rank": role.rank,
                "is_hidden": member.is_hidden,
                "joined_at": iso(member.joined_at),
            })
        return members

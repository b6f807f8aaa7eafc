"""
scorgs.services.user_service — Accounts, RSI verification & memberships
=======================================================================

Users arrive through Discord login (token issuance happens elsewhere) and
are matched on ``discord_id``.  Proving an RSI identity works the same way
as registering an organization: the user pastes their sentinel into their
RSI citizen bio and we look for it.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.constants import OWNER_ROLE_NAME
from scorgs.database.models import (
    AuditActionType,
    Organization,
    OrganizationMember,
    OrganizationRole,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import find_organization_by_rsi_id, iso, log_action, row_to_dict
from scorgs.services.notification_service import SYSTEM_ACTOR_ID, notify
from scorgs.services.verification import content_contains_code, generate_verification_code

logger = logging.getLogger(__name__)


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "discord_id": user.discord_id,
        "username": user.username,
        "avatar_url": user.avatar_url,
        "rsi_handle": user.rsi_handle,
        "spectrum_id": user.spectrum_id,
        "is_rsi_verified": user.is_rsi_verified,
        "verified_at": iso(user.verified_at),
        "created_at": iso(user.created_at),
    }


def get_or_create_user(
    engine: Engine,
    discord_id: str,
    username: str,
    avatar_url: str | None = None,
) -> dict:
    """Find the user by Discord id, refreshing name/avatar, or create one."""
    with Session(engine, expire_on_commit=False) as session:
        user = session.scalar(select(User).where(User.discord_id == str(discord_id)))
        if user is None:
            user = User(discord_id=str(discord_id), username=username, avatar_url=avatar_url)
            session.add(user)
            session.commit()
            logger.info("Created user %s for discord id %s", user.id, discord_id)
        elif user.username != username or user.avatar_url != avatar_url:
            user.username = username
            user.avatar_url = avatar_url
            session.commit()
        return user_to_dict(user)


def get_user(engine: Engine, user_id: str) -> dict:
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user_to_dict(user)


def get_user_by_discord_id(engine: Engine, discord_id: str) -> dict | None:
    with Session(engine) as session:
        user = session.scalar(select(User).where(User.discord_id == str(discord_id)))
        return user_to_dict(user) if user else None


def get_verification_code(user_id: str) -> str:
    return generate_verification_code(user_id)


def verify_rsi_account(engine: Engine, user_id: str, rsi_handle: str, bio: str | None) -> dict:
    """Mark *user_id* as the owner of *rsi_handle* when the bio has their code.

    Raises
    ------
    InvalidInputError
        The sentinel is not in the bio (``verification_code`` attached).
    ConflictError
        A different verified user already holds the handle.
    """
    handle = rsi_handle.strip()
    code = generate_verification_code(user_id)
    if not content_contains_code(bio, code):
        logger.warning("RSI verification for %s (%s): code not in bio", user_id, handle)
        raise InvalidInputError(
            "Verification code not found in your RSI bio",
            verification_code=code,
        )

    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        holder = session.scalar(
            select(User).where(
                User.rsi_handle.ilike(handle),
                User.is_rsi_verified.is_(True),
                User.id != user_id,
            )
        )
        if holder is not None:
            raise ConflictError("This RSI handle is already verified by another account")

        before = row_to_dict(user)
        user.rsi_handle = handle
        user.spectrum_id = handle
        user.is_rsi_verified = True
        user.verified_at = utcnow()
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.VERIFY,
            target_table="users",
            target_id=user.id,
            before=before,
            after=row_to_dict(user),
        )
        notify(
            session,
            entity_type=NT.USER_VERIFIED,
            entity_id=user.id,
            actor_id=SYSTEM_ACTOR_ID,
            notifier_ids=[user.id],
            custom_data={"rsi_handle": handle},
        )
        session.commit()
        logger.info("User %s verified as RSI handle %s", user_id, handle)
        return user_to_dict(user)


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------
def list_user_organizations(engine: Engine, user_id: str) -> list[dict]:
    with Session(engine) as session:
        rows = session.execute(
            select(OrganizationMember, Organization, OrganizationRole)
            .join(Organization, Organization.id == OrganizationMember.organization_id)
            .join(OrganizationRole, OrganizationRole.id == OrganizationMember.role_id)
            .where(
                OrganizationMember.user_id == user_id,
                OrganizationMember.is_active.is_(True),
                Organization.is_active.is_(True),
            )
            .order_by(OrganizationMember.joined_at.asc())
        ).all()
        return [
            {
                "organization_id": org.id,
                "rsi_org_id": org.rsi_org_id,
                "name": org.name,
                "icon_url": org.icon_url,
                "is_owner": org.owner_id == user_id,
                "role_name": role.name,
                "rank": role.rank,
                "is_hidden": member.is_hidden,
                "joined_at": iso(member.joined_at),
            }
            for member, org, role in rows
        ]


def _membership(session: Session, rsi_org_id: str, user_id: str) -> tuple[Organization, OrganizationMember]:
    org = find_organization_by_rsi_id(session, rsi_org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    member = session.scalar(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org.id,
            OrganizationMember.user_id == user_id,
            OrganizationMember.is_active.is_(True),
        )
    )
    if member is None:
        raise NotFoundError("You are not a member of this organization")
    return org, member


def leave_organization(engine: Engine, rsi_org_id: str, user_id: str) -> None:
    with Session(engine) as session:
        org, member = _membership(session, rsi_org_id, user_id)
        role = session.get(OrganizationRole, member.role_id)
        if org.owner_id == user_id or (role is not None and role.name == OWNER_ROLE_NAME):
            raise PermissionDeniedError("The organization owner cannot leave the organization")

        member.is_active = False
        org.total_members = max(0, (org.total_members or 0) - 1)
        notify(
            session,
            entity_type=NT.ORGANIZATION_LEFT,
            entity_id=org.id,
            actor_id=user_id,
            notifier_ids=[org.owner_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id},
        )
        session.commit()
        logger.info("User %s left %s", user_id, org.rsi_org_id)


def toggle_membership_visibility(engine: Engine, rsi_org_id: str, user_id: str) -> dict:
    with Session(engine) as session:
        org, member = _membership(session, rsi_org_id, user_id)
        member.is_hidden = not member.is_hidden
        session.commit()
        return {"rsi_org_id": org.rsi_org_id, "is_hidden": member.is_hidden}

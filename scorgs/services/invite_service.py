"""
scorgs.services.invite_service — Invite codes
==============================================

An invite code lets someone join an organization directly, optionally onto
a specific role.  Codes are 12 random alphanumerics, can be capped by use
count and expiry, and are deactivated rather than deleted.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.constants import INVITE_CODE_LENGTH, MEMBER_ROLE_NAME, OWNER_ROLE_NAME, Permission
from scorgs.database.models import (
    AuditActionType,
    InviteCode,
    Organization,
    OrganizationMember,
    OrganizationRole,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import as_utc, get_organization, iso, log_action, row_to_dict
from scorgs.services.notification_service import notify
from scorgs.services.role_service import require_permission, role_by_name, user_rank

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_uppercase + string.digits


def generate_invite_code(session: Session) -> str:
    """Random code not already present in ``invite_codes``."""
    while True:
        code = "".join(secrets.choice(_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
        exists = session.scalar(select(InviteCode.id).where(InviteCode.code == code))
        if exists is None:
            return code


def invite_to_dict(invite: InviteCode, now: datetime | None = None) -> dict:
    now = now or utcnow()
    expires_at = as_utc(invite.expires_at)
    return {
        "id": invite.id,
        "code": invite.code,
        "organization_id": invite.organization_id,
        "role_id": invite.role_id,
        "created_by": invite.created_by,
        "max_uses": invite.max_uses,
        "used_count": invite.used_count,
        "expires_at": iso(expires_at),
        "is_active": invite.is_active,
        "is_expired": expires_at is not None and expires_at <= now,
        "created_at": iso(invite.created_at),
    }


def add_invite(
    session: Session,
    org: Organization,
    creator_id: str,
    *,
    role_id: str | None = None,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
) -> InviteCode:
    """Insert an invite inside the caller's transaction (no permission check)."""
    invite = InviteCode(
        organization_id=org.id,
        role_id=role_id,
        code=generate_invite_code(session),
        created_by=creator_id,
        max_uses=max_uses,
        expires_at=expires_at,
    )
    session.add(invite)
    session.flush()
    return invite


def create_invite(
    engine: Engine,
    organization_id: str,
    creator_id: str,
    *,
    role_id: str | None = None,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, creator_id, Permission.INVITE_MEMBERS, Permission.MANAGE_MEMBERS)

        if max_uses is not None and max_uses < 1:
            raise InvalidInputError("max_uses must be at least 1")
        if expires_at is not None and as_utc(expires_at) <= utcnow():
            raise InvalidInputError("Expiry must be in the future")

        if role_id is not None:
            role = session.get(OrganizationRole, role_id)
            if role is None or role.organization_id != org.id:
                raise NotFoundError("Role not found")
            if role.name == OWNER_ROLE_NAME:
                raise PermissionDeniedError("Invites cannot grant the Owner role")
            if user_rank(session, org, creator_id) <= role.rank:
                raise PermissionDeniedError("Cannot create an invite for a role at or above your rank")

        invite = add_invite(
            session, org, creator_id, role_id=role_id, max_uses=max_uses, expires_at=expires_at,
        )
        log_action(
            session,
            actor_id=creator_id,
            action_type=AuditActionType.CREATE,
            target_table="invite_codes",
            target_id=invite.id,
            before=None,
            after=row_to_dict(invite),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Invite %s created for %s by %s", invite.code, org.rsi_org_id, creator_id)
        return invite_to_dict(invite)


def use_invite(engine: Engine, code: str, user_id: str, *, now: datetime | None = None) -> dict:
    """Join the invite's organization; returns org + role information."""
    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        invite = session.scalar(select(InviteCode).where(InviteCode.code == code.strip().upper()))
        if invite is None:
            raise NotFoundError("Invite code not found")
        if not invite.is_active:
            raise InvalidInputError("Invite code is no longer active")
        if invite.expires_at is not None and as_utc(invite.expires_at) <= now:
            raise InvalidInputError("Invite code has expired")
        if invite.max_uses is not None and invite.used_count >= invite.max_uses:
            raise InvalidInputError("Invite code has reached its maximum uses")

        org = get_organization(session, invite.organization_id)
        member = session.scalar(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == org.id,
                OrganizationMember.user_id == user_id,
            )
        )
        if member is not None and member.is_active:
            raise ConflictError("You are already a member of this organization")

        role = session.get(OrganizationRole, invite.role_id) if invite.role_id else None
        if role is None:
            role = role_by_name(session, org.id, MEMBER_ROLE_NAME)
        if role is None:
            raise NotFoundError("Default member role not found")

        if member is None:
            member = OrganizationMember(organization_id=org.id, user_id=user_id, role_id=role.id)
            session.add(member)
        else:
            member.is_active = True
            member.role_id = role.id
            member.joined_at = now

        invite.used_count = (invite.used_count or 0) + 1
        org.total_members = (org.total_members or 0) + 1
        session.flush()

        notify(
            session,
            entity_type=NT.ORGANIZATION_JOINED,
            entity_id=org.id,
            actor_id=user_id,
            notifier_ids=[org.owner_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id},
        )
        session.commit()
        logger.info("User %s joined %s via invite %s", user_id, org.rsi_org_id, invite.code)
        return {
            "organization_id": org.id,
            "rsi_org_id": org.rsi_org_id,
            "name": org.name,
            "role_id": role.id,
            "role_name": role.name,
        }


def list_invites(engine: Engine, organization_id: str, actor_id: str) -> list[dict]:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.INVITE_MEMBERS, Permission.MANAGE_MEMBERS)
        invites = session.scalars(
            select(InviteCode)
            .where(InviteCode.organization_id == org.id)
            .order_by(InviteCode.created_at.desc())
        ).all()
        now = utcnow()
        return [invite_to_dict(i, now) for i in invites]


def deactivate_invite(engine: Engine, organization_id: str, invite_id: str, actor_id: str) -> None:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.INVITE_MEMBERS, Permission.MANAGE_MEMBERS)
        invite = session.get(InviteCode, invite_id)
        if invite is None or invite.organization_id != org.id:
            raise NotFoundError("Invite not found")
        before = row_to_dict(invite)
        invite.is_active = False
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.UPDATE,
            target_table="invite_codes",
            target_id=invite.id,
            before=before,
            after=row_to_dict(invite),
            organization_id=org.id,
        )
        session.commit()


def invite_stats(engine: Engine, organization_id: str, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    with Session(engine) as session:
        invites = session.scalars(
            select(InviteCode).where(InviteCode.organization_id == organization_id)
        ).all()
    expired = [i for i in invites if i.expires_at is not None and as_utc(i.expires_at) <= now]
    active = [
        i for i in invites
        if i.is_active and i not in expired
        and (i.max_uses is None or i.used_count < i.max_uses)
    ]
    return {
        "total": len(invites),
        "active": len(active),
        "expired": len(expired),
        "total_uses": sum(i.used_count or 0 for i in invites),
    }

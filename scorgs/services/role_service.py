"""
scorgs.services.role_service — Roles, permissions & membership rank
====================================================================

Every organization carries a ranked set of roles.  A member holds exactly
one role; a role grants a set of permission names from
:class:`scorgs.constants.Permission`.

Rules enforced here:

* The organization owner implicitly holds every permission.
* The ``Owner`` role is a system role, not editable, and can never be
  assigned to or taken away from anyone through :func:`assign_role`.
* Managing somebody (changing their role, removing them) requires a
  **strictly higher** rank than theirs.

The ``session``-level helpers (:func:`member_role`, :func:`has_permission`,
:func:`require_permission`, :func:`user_rank`) are shared by the other
services so permission checks run inside the caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from scorgs.constants import (
    ALL_PERMISSIONS,
    DEFAULT_ROLES,
    HR_ROLE_NAMES,
    MAX_CUSTOM_ROLE_RANK,
    MEMBER_ROLE_NAME,
    MIN_CUSTOM_ROLE_RANK,
    OWNER_ROLE_NAME,
    Permission,
)
from scorgs.database.models import (
    AuditActionType,
    Organization,
    OrganizationMember,
    OrganizationRole,
    RolePermission,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from scorgs.services.common import get_organization, iso, log_action, row_to_dict
from scorgs.services.notification_service import notify

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------
def active_member(session: Session, organization_id: str, user_id: str) -> OrganizationMember | None:
    return session.scalar(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
            OrganizationMember.is_active.is_(True),
        )
    )


def member_role(session: Session, organization_id: str, user_id: str) -> OrganizationRole | None:
    """The role of an active member, or ``None`` for non-members."""
    member = active_member(session, organization_id, user_id)
    if member is None:
        return None
    return session.get(OrganizationRole, member.role_id)


def role_permission_names(session: Session, role_id: str) -> set[str]:
    return set(session.scalars(
        select(RolePermission.permission).where(
            RolePermission.role_id == role_id,
            RolePermission.granted.is_(True),
        )
    ))


def permissions_for(session: Session, org: Organization, user_id: str) -> set[str]:
    if org.owner_id == user_id:
        return set(ALL_PERMISSIONS)
    role = member_role(session, org.id, user_id)
    if role is None:
        return set()
    return role_permission_names(session, role.id)


def has_permission(session: Session, org: Organization, user_id: str, permission: str) -> bool:
    return str(permission) in permissions_for(session, org, user_id)


def require_permission(
    session: Session,
    org: Organization,
    user_id: str,
    *permissions: str,
) -> None:
    """Raise 403 unless the user holds at least one of *permissions*."""
    granted = permissions_for(session, org, user_id)
    if not any(str(p) in granted for p in permissions):
        logger.warning(
            "Permission denied: user=%s org=%s needs one of %s",
            user_id, org.rsi_org_id, [str(p) for p in permissions],
        )
        raise PermissionDeniedError("Insufficient permissions")


def user_rank(session: Session, org: Organization, user_id: str) -> int:
    """Rank of the user's role; owner is top rank, non-members are 0."""
    role = member_role(session, org.id, user_id)
    if role is not None:
        return role.rank
    if org.owner_id == user_id:
        return 100
    return 0


def role_by_name(session: Session, organization_id: str, name: str) -> OrganizationRole | None:
    return session.scalar(
        select(OrganizationRole).where(
            OrganizationRole.organization_id == organization_id,
            OrganizationRole.name == name,
        )
    )


def member_ids(session: Session, organization_id: str) -> list[str]:
    return list(session.scalars(
        select(OrganizationMember.user_id).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.is_active.is_(True),
        )
    ))


def role_to_dict(session: Session, role: OrganizationRole) -> dict:
    members = session.scalar(
        select(func.count(OrganizationMember.id)).where(
            OrganizationMember.role_id == role.id,
            OrganizationMember.is_active.is_(True),
        )
    ) or 0
    return {
        "id": role.id,
        "organization_id": role.organization_id,
        "name": role.name,
        "description": role.description,
        "rank": role.rank,
        "is_system_role": role.is_system_role,
        "is_editable": role.is_editable,
        "permissions": sorted(role_permission_names(session, role.id)),
        "member_count": members,
        "created_at": iso(role.created_at),
    }


def _set_permissions(session: Session, role: OrganizationRole, permissions: Iterable[str]) -> None:
    wanted = set(str(p) for p in permissions)
    unknown = wanted - set(ALL_PERMISSIONS)
    if unknown:
        raise InvalidInputError(f"Unknown permissions: {', '.join(sorted(unknown))}")
    role.permissions.clear()
    session.flush()
    role.permissions.extend(RolePermission(permission=p) for p in sorted(wanted))


# ---------------------------------------------------------------------------
# Default roles
# ---------------------------------------------------------------------------
def create_default_roles(session: Session, organization_id: str) -> dict[str, OrganizationRole]:
    """Insert the built-in role set for a new organization."""
    roles: dict[str, OrganizationRole] = {}
    for name, description, rank, is_system, is_editable, perms in DEFAULT_ROLES:
        role = OrganizationRole(
            organization_id=organization_id,
            name=name,
            description=description,
            rank=rank,
            is_system_role=is_system,
            is_editable=is_editable,
            permissions=[RolePermission(permission=str(p)) for p in perms],
        )
        session.add(role)
        roles[name] = role
    session.flush()
    logger.info("Created %d default roles for org %s", len(roles), organization_id)
    return roles


def ensure_owner_role_has_all_permissions(engine: Engine, organization_id: str) -> int:
    """Grant any missing permission to the Owner role; returns how many."""
    with Session(engine) as session:
        role = role_by_name(session, organization_id, OWNER_ROLE_NAME)
        if role is None:
            raise NotFoundError("Owner role not found")
        present = {p.permission for p in role.permissions}
        missing = [p for p in ALL_PERMISSIONS if p not in present]
        for perm in missing:
            role.permissions.append(RolePermission(permission=perm))
        for perm in role.permissions:
            perm.granted = True
        session.commit()
        if missing:
            logger.info("Owner role in org %s gained %d permissions", organization_id, len(missing))
        return len(missing)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_roles(engine: Engine, organization_id: str) -> list[dict]:
    with Session(engine) as session:
        roles = session.scalars(
            select(OrganizationRole)
            .where(OrganizationRole.organization_id == organization_id)
            .order_by(OrganizationRole.rank.desc())
        ).all()
        return [role_to_dict(session, r) for r in roles]


def user_has_permission(engine: Engine, organization_id: str, user_id: str, permission: str) -> bool:
    with Session(engine) as session:
        org = session.get(Organization, organization_id)
        if org is None or not org.is_active:
            return False
        return has_permission(session, org, user_id, permission)


def get_user_permissions(engine: Engine, organization_id: str, user_id: str) -> dict:
    """Role and effective permission list for one user."""
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        role = member_role(session, org.id, user_id)
        return {
            "user_id": user_id,
            "is_owner": org.owner_id == user_id,
            "role": role.name if role else None,
            "rank": user_rank(session, org, user_id),
            "permissions": sorted(permissions_for(session, org, user_id)),
        }


def can_manage_user_role(engine: Engine, organization_id: str, manager_id: str, target_id: str) -> bool:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        if not has_permission(session, org, manager_id, Permission.MANAGE_ROLES):
            return False
        return user_rank(session, org, manager_id) > user_rank(session, org, target_id)


def validate_hr_role_assignment(
    engine: Engine,
    organization_id: str,
    assigner_id: str,
    target_id: str,
    hr_role_name: str,
) -> dict:
    """Dry-run check for handing out an HR role; returns ``{valid, reason}``."""
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        if hr_role_name not in HR_ROLE_NAMES:
            return {"valid": False, "reason": f"'{hr_role_name}' is not an HR role"}
        if not has_permission(session, org, assigner_id, Permission.ASSIGN_ROLES):
            return {"valid": False, "reason": "You do not have permission to assign roles"}
        if active_member(session, org.id, target_id) is None:
            return {"valid": False, "reason": "Target user is not a member of this organization"}
        role = role_by_name(session, org.id, hr_role_name)
        if role is None:
            return {"valid": False, "reason": f"Role '{hr_role_name}' does not exist"}
        if user_rank(session, org, assigner_id) <= role.rank:
            return {"valid": False, "reason": "You cannot assign a role at or above your own rank"}
        return {"valid": True, "reason": None}


# ---------------------------------------------------------------------------
# Role mutations
# ---------------------------------------------------------------------------
def create_role(
    engine: Engine,
    organization_id: str,
    actor_id: str,
    *,
    name: str,
    rank: int,
    description: str | None = None,
    permissions: Iterable[str] = (),
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.CREATE_ROLES, Permission.MANAGE_ROLES)

        if not MIN_CUSTOM_ROLE_RANK <= rank <= MAX_CUSTOM_ROLE_RANK:
            raise InvalidInputError(
                f"Rank must be between {MIN_CUSTOM_ROLE_RANK} and {MAX_CUSTOM_ROLE_RANK}"
            )
        if rank >= user_rank(session, org, actor_id):
            raise PermissionDeniedError("Cannot create a role at or above your own rank")
        if role_by_name(session, org.id, name) is not None:
            raise ConflictError(f"A role named '{name}' already exists")

        role = OrganizationRole(
            organization_id=org.id,
            name=name,
            description=description,
            rank=rank,
            is_system_role=False,
            is_editable=True,
        )
        session.add(role)
        session.flush()
        _set_permissions(session, role, permissions)
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.CREATE,
            target_table="organization_roles",
            target_id=role.id,
            before=None,
            after=row_to_dict(role),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Role %r (rank %d) created in %s by %s", name, rank, org.rsi_org_id, actor_id)
        return role_to_dict(session, role)


def update_role(
    engine: Engine,
    organization_id: str,
    role_id: str,
    actor_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    rank: int | None = None,
    permissions: Iterable[str] | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.UPDATE_ROLES, Permission.MANAGE_ROLES)

        role = session.get(OrganizationRole, role_id)
        if role is None or role.organization_id != org.id:
            raise NotFoundError("Role not found")
        if not role.is_editable:
            raise InvalidInputError("This role cannot be edited")

        actor_rank = user_rank(session, org, actor_id)
        new_rank = role.rank if rank is None else rank
        if actor_rank <= role.rank or actor_rank <= new_rank:
            raise PermissionDeniedError("Cannot modify a role at or above your own rank")
        if rank is not None and not MIN_CUSTOM_ROLE_RANK <= rank <= MAX_CUSTOM_ROLE_RANK:
            raise InvalidInputError(
                f"Rank must be between {MIN_CUSTOM_ROLE_RANK} and {MAX_CUSTOM_ROLE_RANK}"
            )
        if name is not None and name != role.name:
            if role_by_name(session, org.id, name) is not None:
                raise ConflictError(f"A role named '{name}' already exists")

        before = row_to_dict(role)
        before["permissions"] = sorted(role_permission_names(session, role.id))

        if name is not None:
            role.name = name
        if description is not None:
            role.description = description
        role.rank = new_rank
        if permissions is not None:
            _set_permissions(session, role, permissions)
        session.flush()

        after = row_to_dict(role)
        after["permissions"] = sorted(role_permission_names(session, role.id))
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.UPDATE,
            target_table="organization_roles",
            target_id=role.id,
            before=before,
            after=after,
            organization_id=org.id,
        )
        session.commit()
        logger.info("Role %s updated in %s by %s", role.id, org.rsi_org_id, actor_id)
        return role_to_dict(session, role)


def delete_role(engine: Engine, organization_id: str, role_id: str, actor_id: str) -> None:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.DELETE_ROLES, Permission.MANAGE_ROLES)

        role = session.get(OrganizationRole, role_id)
        if role is None or role.organization_id != org.id:
            raise NotFoundError("Role not found")
        if not role.is_editable or role.is_system_role:
            raise InvalidInputError("System roles cannot be deleted")
        if user_rank(session, org, actor_id) <= role.rank:
            raise PermissionDeniedError("Cannot delete a role at or above your own rank")

        in_use = session.scalar(
            select(func.count(OrganizationMember.id)).where(
                OrganizationMember.role_id == role.id,
                OrganizationMember.is_active.is_(True),
            )
        ) or 0
        if in_use:
            raise InvalidInputError(
                f"Role is still assigned to {in_use} member(s)", member_count=in_use
            )

        # Former members keep their role_id; park them on the default role.
        fallback = role_by_name(session, org.id, MEMBER_ROLE_NAME)
        session.execute(
            update(OrganizationMember)
            .where(
                OrganizationMember.role_id == role.id,
                OrganizationMember.is_active.is_(False),
            )
            .values(role_id=fallback.id)
        )

        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.DELETE,
            target_table="organization_roles",
            target_id=role.id,
            before=row_to_dict(role),
            after=None,
            organization_id=org.id,
        )
        session.delete(role)
        session.commit()
        logger.info("Role %s deleted from %s by %s", role_id, org.rsi_org_id, actor_id)


# ---------------------------------------------------------------------------
# Membership mutations
# ---------------------------------------------------------------------------
def assign_role(
    engine: Engine,
    organization_id: str,
    target_user_id: str,
    role_id: str,
    assigner_id: str,
) -> dict:
    """Move *target_user_id* onto *role_id*."""
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)

        role = session.get(OrganizationRole, role_id)
        if role is None or role.organization_id != org.id:
            raise NotFoundError("Role not found")

        require_permission(session, org, assigner_id, Permission.ASSIGN_ROLES)

        member = active_member(session, org.id, target_user_id)
        if member is None:
            raise NotFoundError("User is not a member of this organization")
        current = session.get(OrganizationRole, member.role_id)

        if role.name == OWNER_ROLE_NAME:
            raise PermissionDeniedError("The Owner role cannot be assigned")
        if (current is not None and current.name == OWNER_ROLE_NAME) or target_user_id == org.owner_id:
            raise PermissionDeniedError("The owner's role cannot be changed")

        assigner_rank = user_rank(session, org, assigner_id)
        if current is not None and assigner_rank <= current.rank:
            raise PermissionDeniedError("Cannot change the role of a member at or above your rank")
        if assigner_rank <= role.rank:
            raise PermissionDeniedError("Cannot assign a role at or above your own rank")

        before = row_to_dict(member)
        member.role_id = role.id
        session.flush()
        log_action(
            session,
            actor_id=assigner_id,
            action_type=AuditActionType.ASSIGN_ROLE,
            target_table="organization_members",
            target_id=member.id,
            before=before,
            after=row_to_dict(member),
            organization_id=org.id,
        )
        notify(
            session,
            entity_type=NT.ORGANIZATION_ROLE_CHANGED,
            entity_id=org.id,
            actor_id=assigner_id,
            notifier_ids=[target_user_id],
            custom_data={"name": org.name, "rsi_org_id": org.rsi_org_id, "role": role.name},
        )
        session.commit()
        logger.info(
            "User %s assigned role %r in %s by %s",
            target_user_id, role.name, org.rsi_org_id, assigner_id,
        )
        return {
            "user_id": target_user_id,
            "role_id": role.id,
            "role_name": role.name,
            "rank": role.rank,
        }


def remove_member(engine: Engine, organization_id: str, target_user_id: str, actor_id: str) -> None:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, actor_id, Permission.REMOVE_MEMBERS, Permission.MANAGE_MEMBERS)

        if target_user_id == org.owner_id:
            raise PermissionDeniedError("The organization owner cannot be removed")
        member = active_member(session, org.id, target_user_id)
        if member is None:
            raise NotFoundError("User is not a member of this organization")
        if user_rank(session, org, actor_id) <= user_rank(session, org, target_user_id):
            raise PermissionDeniedError("Cannot remove a member at or above your rank")

        before = row_to_dict(member)
        member.is_active = False
        org.total_members = max(0, (org.total_members or 0) - 1)
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.REMOVE_MEMBER,
            target_table="organization_members",
            target_id=member.id,
            before=before,
            after=row_to_dict(member),
            organization_id=org.id,
        )
        session.commit()
        logger.info("User %s removed from %s by %s", target_user_id, org.rsi_org_id, actor_id)

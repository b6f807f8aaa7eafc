"""
tests/test_roles.py — Roles & Permissions Tests
=================================================
Default role set, rank rules for creating/assigning roles, and the
owner's implicit permissions.
"""

from __future__ import annotations

import pytest
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from conftest import add_member, make_user
from scorgs.constants import ALL_PERMISSIONS, Permission
from scorgs.database.models import Notification, OrganizationMember, RolePermission
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import role_service, user_service


def _role_id(engine, org_id: str, name: str) -> str:
    with Session(engine) as s:
        return role_service.role_by_name(s, org_id, name).id


# ===========================================================================
# Defaults & queries
# ===========================================================================
class TestDefaultRoles:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]

    def test_default_roles_ordered_by_rank(self):
        roles = role_service.list_roles(self.engine, self.org_id)
        assert [r["name"] for r in roles] == [
            "Owner", "Admin", "HR Manager", "Recruiter", "Supervisor", "Member",
        ]
        assert [r["rank"] for r in roles] == [100, 80, 70, 50, 40, 10]

    def test_owner_role_has_everything_and_one_member(self):
        owner_role = role_service.list_roles(self.engine, self.org_id)[0]
        assert set(owner_role["permissions"]) == set(ALL_PERMISSIONS)
        assert owner_role["member_count"] == 1
        assert owner_role["is_editable"] is False

    def test_ensure_owner_role_restores_missing_permissions(self):
        owner_role_id = _role_id(self.engine, self.org_id, "Owner")
        with Session(self.engine) as s:
            s.execute(delete(RolePermission).where(
                RolePermission.role_id == owner_role_id,
                RolePermission.permission == Permission.VIEW_ANALYTICS.value,
            ))
            s.commit()

        assert role_service.ensure_owner_role_has_all_permissions(self.engine, self.org_id) == 1
        assert role_service.ensure_owner_role_has_all_permissions(self.engine, self.org_id) == 0

    def test_owner_permissions(self):
        perms = role_service.get_user_permissions(self.engine, self.org_id, self.owner)
        assert perms["is_owner"] is True
        assert perms["role"] == "Owner"
        assert perms["rank"] == 100
        assert set(perms["permissions"]) == set(ALL_PERMISSIONS)

    def test_member_permissions(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org_id, member)
        perms = role_service.get_user_permissions(self.engine, self.org_id, member)
        assert perms["role"] == "Member"
        assert perms["rank"] == 10
        assert Permission.CREATE_EVENTS in perms["permissions"]
        assert role_service.user_has_permission(self.engine, self.org_id, member, Permission.VIEW_MEMBERS)
        assert not role_service.user_has_permission(self.engine, self.org_id, member, Permission.MANAGE_ROLES)

    def test_non_member_has_nothing(self):
        stranger = make_user(self.engine, "Stranger")
        perms = role_service.get_user_permissions(self.engine, self.org_id, stranger)
        assert perms["role"] is None
        assert perms["rank"] == 0
        assert perms["permissions"] == []

    def test_user_has_permission_unknown_org(self):
        assert not role_service.user_has_permission(self.engine, "missing", self.owner, Permission.VIEW_MEMBERS)


# ===========================================================================
# Role CRUD
# ===========================================================================
class TestRoleMutations:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.admin = make_user(db_engine, "Admiral")
        add_member(db_engine, self.org_id, self.admin, "Admin")

    def test_create_role(self):
        role = role_service.create_role(
            self.engine, self.org_id, self.owner,
            name="Gunner", rank=30, permissions=[Permission.VIEW_MEMBERS],
        )
        assert role["name"] == "Gunner"
        assert role["permissions"] == ["view_members"]
        assert role["is_system_role"] is False

    @pytest.mark.parametrize("rank", [0, 100, 150])
    def test_rank_out_of_range(self, rank):
        with pytest.raises(InvalidInputError, match="Rank must be between"):
            role_service.create_role(self.engine, self.org_id, self.owner, name="X", rank=rank)

    def test_cannot_create_at_or_above_own_rank(self):
        with pytest.raises(PermissionDeniedError):
            role_service.create_role(self.engine, self.org_id, self.admin, name="Peer", rank=80)
        role = role_service.create_role(self.engine, self.org_id, self.admin, name="Below", rank=79)
        assert role["rank"] == 79

    def test_duplicate_name(self):
        with pytest.raises(ConflictError):
            role_service.create_role(self.engine, self.org_id, self.owner, name="Member", rank=5)

    def test_unknown_permission(self):
        with pytest.raises(InvalidInputError, match="Unknown permissions: fly_ships"):
            role_service.create_role(
                self.engine, self.org_id, self.owner, name="Pilot", rank=20, permissions=["fly_ships"],
            )

    def test_member_cannot_create_roles(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org_id, member)
        with pytest.raises(PermissionDeniedError):
            role_service.create_role(self.engine, self.org_id, member, name="Mine", rank=5)

    def test_update_role_replaces_permissions(self):
        role = role_service.create_role(
            self.engine, self.org_id, self.owner,
            name="Scout", rank=20, permissions=[Permission.VIEW_MEMBERS],
        )
        updated = role_service.update_role(
            self.engine, self.org_id, role["id"], self.owner,
            name="Pathfinder", permissions=[Permission.CREATE_EVENTS, Permission.UPDATE_EVENTS],
        )
        assert updated["name"] == "Pathfinder"
        assert updated["permissions"] == ["create_events", "update_events"]

    def test_owner_role_not_editable(self):
        owner_role = _role_id(self.engine, self.org_id, "Owner")
        with pytest.raises(InvalidInputError, match="cannot be edited"):
            role_service.update_role(self.engine, self.org_id, owner_role, self.owner, name="King")

    def test_admin_cannot_edit_own_rank_role(self):
        admin_role = _role_id(self.engine, self.org_id, "Admin")
        with pytest.raises(PermissionDeniedError):
            role_service.update_role(self.engine, self.org_id, admin_role, self.admin, description="x")

    def test_delete_role(self):
        role = role_service.create_role(self.engine, self.org_id, self.owner, name="Temp", rank=5)
        role_service.delete_role(self.engine, self.org_id, role["id"], self.owner)
        names = [r["name"] for r in role_service.list_roles(self.engine, self.org_id)]
        assert "Temp" not in names

    def test_delete_system_role(self):
        with pytest.raises(InvalidInputError, match="System roles"):
            role_service.delete_role(
                self.engine, self.org_id, _role_id(self.engine, self.org_id, "Member"), self.owner,
            )

    def test_delete_role_in_use(self):
        recruiter_role = _role_id(self.engine, self.org_id, "Recruiter")
        member = make_user(self.engine, "Scout")
        add_member(self.engine, self.org_id, member, "Recruiter")
        with pytest.raises(InvalidInputError) as exc_info:
            role_service.delete_role(self.engine, self.org_id, recruiter_role, self.owner)
        assert exc_info.value.extra == {"member_count": 1}

    def test_delete_role_held_by_former_member(self):
        role = role_service.create_role(self.engine, self.org_id, self.owner, name="Scout", rank=5)
        pilot = make_user(self.engine, "Pilot")
        add_member(self.engine, self.org_id, pilot, "Scout")
        user_service.leave_organization(self.engine, "TESTORG", pilot)

        with self.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        role_service.delete_role(self.engine, self.org_id, role["id"], self.owner)

        member_role = _role_id(self.engine, self.org_id, "Member")
        with Session(self.engine) as s:
            former = s.scalar(select(OrganizationMember).where(OrganizationMember.user_id == pilot))
            assert former.is_active is False
            assert former.role_id == member_role

    def test_delete_unknown_role(self):
        with pytest.raises(NotFoundError):
            role_service.delete_role(self.engine, self.org_id, "nope", self.owner)


# ===========================================================================
# Assignment & removal
# ===========================================================================
class TestAssignRole:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.admin = make_user(db_engine, "Admiral")
        add_member(db_engine, self.org_id, self.admin, "Admin")
        self.member = make_user(db_engine, "Grunt")
        add_member(db_engine, self.org_id, self.member)

    def test_assign_role_and_notify(self):
        result = role_service.assign_role(
            self.engine, self.org_id, self.member,
            _role_id(self.engine, self.org_id, "Recruiter"), self.admin,
        )
        assert result["role_name"] == "Recruiter"
        assert result["rank"] == 50
        with Session(self.engine) as s:
            assert s.query(Notification).filter_by(notifier_id=self.member).count() == 1

    def test_owner_role_never_assignable(self):
        with pytest.raises(PermissionDeniedError, match="Owner role cannot be assigned"):
            role_service.assign_role(
                self.engine, self.org_id, self.member,
                _role_id(self.engine, self.org_id, "Owner"), self.owner,
            )

    def test_owner_cannot_be_demoted(self):
        with pytest.raises(PermissionDeniedError, match="owner's role"):
            role_service.assign_role(
                self.engine, self.org_id, self.owner,
                _role_id(self.engine, self.org_id, "Member"), self.owner,
            )

    def test_cannot_assign_at_own_rank(self):
        with pytest.raises(PermissionDeniedError, match="at or above your own rank"):
            role_service.assign_role(
                self.engine, self.org_id, self.member,
                _role_id(self.engine, self.org_id, "Admin"), self.admin,
            )

    def test_cannot_change_peer(self):
        other_admin = make_user(self.engine, "Commodore")
        add_member(self.engine, self.org_id, other_admin, "Admin")
        with pytest.raises(PermissionDeniedError, match="member at or above your rank"):
            role_service.assign_role(
                self.engine, self.org_id, other_admin,
                _role_id(self.engine, self.org_id, "Member"), self.admin,
            )

    def test_member_cannot_assign(self):
        with pytest.raises(PermissionDeniedError):
            role_service.assign_role(
                self.engine, self.org_id, self.member,
                _role_id(self.engine, self.org_id, "Member"), self.member,
            )

    def test_can_manage_user_role(self):
        assert role_service.can_manage_user_role(self.engine, self.org_id, self.admin, self.member)
        assert not role_service.can_manage_user_role(self.engine, self.org_id, self.admin, self.owner)
        assert not role_service.can_manage_user_role(self.engine, self.org_id, self.member, self.admin)

    def test_validate_hr_role_assignment(self):
        ok = role_service.validate_hr_role_assignment(
            self.engine, self.org_id, self.admin, self.member, "HR Manager",
        )
        assert ok == {"valid": True, "reason": None}

        not_hr = role_service.validate_hr_role_assignment(
            self.engine, self.org_id, self.admin, self.member, "Admin",
        )
        assert not not_hr["valid"]
        assert "not an HR role" in not_hr["reason"]

        no_perm = role_service.validate_hr_role_assignment(
            self.engine, self.org_id, self.member, self.admin, "Recruiter",
        )
        assert no_perm["reason"] == "You do not have permission to assign roles"

        stranger = make_user(self.engine, "Stranger")
        not_member = role_service.validate_hr_role_assignment(
            self.engine, self.org_id, self.admin, stranger, "Recruiter",
        )
        assert not_member["reason"] == "Target user is not a member of this organization"

    def test_remove_member(self):
        role_service.remove_member(self.engine, self.org_id, self.member, self.admin)
        with Session(self.engine) as s:
            row = s.query(OrganizationMember).filter_by(user_id=self.member).one()
            assert row.is_active is False

    def test_owner_cannot_be_removed(self):
        with pytest.raises(PermissionDeniedError):
            role_service.remove_member(self.engine, self.org_id, self.owner, self.admin)

    def test_remove_non_member(self):
        stranger = make_user(self.engine, "Stranger")
        with pytest.raises(NotFoundError):
            role_service.remove_member(self.engine, self.org_id, stranger, self.admin)

"""
tests/test_organizations.py — Organization Registry Tests
===========================================================
Registration by sentinel, owner-only verification, soft delete, directory
filters, the upvote cooldown window, and member visibility.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import add_member, make_org, make_user, org_page
from scorgs.clients.rsi import RSIOrganizationPage
from scorgs.database.models import AuditLog, Notification, OrganizationMember, OrganizationUpvote
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import organization_service, user_service


# ===========================================================================
# Registration
# ===========================================================================
class TestCreateOrganization:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner):
        self.engine = db_engine
        self.owner = owner

    def test_registers_with_sentinel(self):
        org = make_org(self.engine, self.owner, "testorg", playstyle_tags=["casual"])
        assert org["rsi_org_id"] == "TESTORG"
        assert org["name"] == "Test Squadron"
        assert org["is_registered"] is True
        assert org["owner_id"] == self.owner
        assert org["total_members"] == 1
        assert org["member_count"] == 42
        assert org["playstyle_tags"] == ["casual"]
        assert org["languages"] == ["English"]

    def test_owner_becomes_owner_member(self):
        org = make_org(self.engine, self.owner)
        memberships = user_service.list_user_organizations(self.engine, self.owner)
        assert len(memberships) == 1
        assert memberships[0]["organization_id"] == org["id"]
        assert memberships[0]["role_name"] == "Owner"
        assert memberships[0]["is_owner"] is True

    def test_audit_and_notification(self):
        org = make_org(self.engine, self.owner)
        with Session(self.engine) as s:
            audit = s.query(AuditLog).filter_by(target_id=org["id"]).one()
            assert audit.action_type == "CREATE"
            assert s.query(Notification).filter_by(notifier_id=self.owner).count() == 1

    def test_missing_sentinel(self):
        page = RSIOrganizationPage(spectrum_id="TESTORG", name="Test", description="no code")
        with pytest.raises(InvalidInputError) as exc_info:
            organization_service.create_organization(self.engine, self.owner, "TESTORG", page)
        assert exc_info.value.extra["verification_code"].startswith("[SCORGS:")

    def test_sentinel_of_another_user_rejected(self):
        other = make_user(self.engine, "Impostor")
        with pytest.raises(InvalidInputError):
            organization_service.create_organization(
                self.engine, other, "TESTORG", org_page(self.owner),
            )

    def test_duplicate_registration(self):
        make_org(self.engine, self.owner)
        other = make_user(self.engine, "Latecomer")
        with pytest.raises(ConflictError, match="already registered"):
            organization_service.create_organization(
                self.engine, other, "TestOrg", org_page(other),
            )

    def test_sentinel_in_content_tab(self):
        from scorgs.services.verification import generate_verification_code

        page = RSIOrganizationPage(
            spectrum_id="TABS",
            name="Tabbed",
            content_sources={"content-tab-charter": generate_verification_code(self.owner).strip("[]")},
        )
        org = organization_service.create_organization(self.engine, self.owner, "TABS", page)
        assert org["rsi_org_id"] == "TABS"


class TestVerifyAndSentinel:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org = org

    def test_owner_sees_sentinel(self):
        sentinel = organization_service.get_verification_sentinel(self.engine, "TESTORG", self.owner)
        assert sentinel.startswith("[SCORGS:")

    def test_non_owner_cannot_see_sentinel(self):
        other = make_user(self.engine, "Nosy")
        with pytest.raises(PermissionDeniedError):
            organization_service.get_verification_sentinel(self.engine, "TESTORG", other)

    def test_verify_with_sentinel_refreshes_details(self):
        sentinel = organization_service.get_verification_sentinel(self.engine, "TESTORG", self.owner)
        page = RSIOrganizationPage(
            spectrum_id="TESTORG", name="Renamed Squadron", headline=f"Hi {sentinel}",
        )
        result = organization_service.verify_organization(self.engine, "TESTORG", self.owner, page)
        assert result["name"] == "Renamed Squadron"
        assert result["is_registered"] is True

    def test_verify_without_sentinel(self):
        page = RSIOrganizationPage(spectrum_id="TESTORG", name="x", headline="nothing")
        with pytest.raises(InvalidInputError) as exc_info:
            organization_service.verify_organization(self.engine, "TESTORG", self.owner, page)
        assert "verification_code" in exc_info.value.extra

    def test_verify_by_non_owner(self):
        other = make_user(self.engine, "Nosy")
        page = RSIOrganizationPage(spectrum_id="TESTORG", name="x")
        with pytest.raises(PermissionDeniedError):
            organization_service.verify_organization(self.engine, "TESTORG", other, page)


# ===========================================================================
# Read / update / delete / list
# ===========================================================================
class TestOrganizationCrud:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org = org

    def test_get_is_case_insensitive(self):
        assert organization_service.get_organization(self.engine, "testorg")["id"] == self.org["id"]

    def test_get_unknown(self):
        with pytest.raises(NotFoundError):
            organization_service.get_organization(self.engine, "NOPE")

    def test_update_ignores_frozen_keys(self):
        result = organization_service.update_organization(
            self.engine, "TESTORG", self.owner,
            {"headline": "New headline", "owner_id": "someone-else", "rsi_org_id": "HACK"},
        )
        assert result["headline"] == "New headline"
        assert result["owner_id"] == self.owner
        assert result["rsi_org_id"] == "TESTORG"

    def test_update_notifies_other_members(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org["id"], member)
        organization_service.update_organization(self.engine, "TESTORG", self.owner, {"headline": "Changed"})
        with Session(self.engine) as s:
            assert s.query(Notification).filter_by(notifier_id=member).count() == 1

    def test_member_cannot_update(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org["id"], member)
        with pytest.raises(PermissionDeniedError):
            organization_service.update_organization(self.engine, "TESTORG", member, {"headline": "x"})

    def test_soft_delete(self):
        organization_service.delete_organization(self.engine, "TESTORG", self.owner)
        with pytest.raises(NotFoundError):
            organization_service.get_organization(self.engine, "TESTORG")
        assert organization_service.list_organizations(self.engine)["total"] == 0

    def test_list_filters(self):
        second_owner = make_user(self.engine, "Other")
        make_org(self.engine, second_owner, "MINERS", languages=["German"], focus_tags=["mining"])

        everything = organization_service.list_organizations(self.engine)
        assert everything["total"] == 2

        german = organization_service.list_organizations(self.engine, languages=["German"])
        assert [o["rsi_org_id"] for o in german["organizations"]] == ["MINERS"]

        mining = organization_service.list_organizations(self.engine, focus_tags=["mining", "trading"])
        assert mining["total"] == 1

        searched = organization_service.list_organizations(self.engine, search="miner")
        assert [o["rsi_org_id"] for o in searched["organizations"]] == ["MINERS"]

    def test_list_pagination_and_sort(self):
        for i in range(3):
            make_org(self.engine, make_user(self.engine, f"Owner{i}"), f"ORG{i}")
        page = organization_service.list_organizations(
            self.engine, sort_by="name", sort_order="asc", page=2, limit=2,
        )
        assert page["total"] == 4
        assert page["page"] == 2
        assert len(page["organizations"]) == 2


# ===========================================================================
# Upvotes
# ===========================================================================
class TestUpvotes:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.voter = make_user(db_engine, "Fan")
        self.now = datetime.now(UTC)

    def test_upvote_and_status(self):
        result = organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        assert result == {"total_upvotes": 1}

        status = organization_service.get_upvote_status(
            self.engine, "TESTORG", self.voter, now=self.now + timedelta(days=1),
        )
        assert status["has_upvoted"] is True
        assert status["can_upvote"] is False
        assert status["next_upvote_at"] is not None

    def test_second_upvote_inside_window_conflicts(self):
        organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        with pytest.raises(ConflictError) as exc_info:
            organization_service.upvote_organization(
                self.engine, "TESTORG", self.voter, now=self.now + timedelta(days=6),
            )
        assert "next_upvote_at" in exc_info.value.extra

    def test_upvote_again_after_cooldown(self):
        organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        later = self.now + timedelta(days=7, minutes=1)
        status = organization_service.get_upvote_status(self.engine, "TESTORG", self.voter, now=later)
        assert status["can_upvote"] is True
        result = organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=later)
        assert result == {"total_upvotes": 1}

    def test_custom_cooldown(self):
        organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        result = organization_service.upvote_organization(
            self.engine, "TESTORG", self.voter, cooldown_days=1, now=self.now + timedelta(days=2),
        )
        assert result["total_upvotes"] == 1

    def test_weekly_renewals_count_each_voter_once(self):
        other = make_user(self.engine, "SecondFan")
        organization_service.upvote_organization(self.engine, "TESTORG", other, now=self.now)
        for week in range(3):
            result = organization_service.upvote_organization(
                self.engine, "TESTORG", self.voter, now=self.now + timedelta(days=8 * week),
            )
        assert result == {"total_upvotes": 2}

        with Session(self.engine) as s:
            rows = s.scalar(select(func.count(OrganizationUpvote.id)).where(
                OrganizationUpvote.user_id == self.voter,
            ))
        assert rows == 1

    def test_remove_upvote_inside_window(self):
        organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        result = organization_service.remove_upvote(
            self.engine, "TESTORG", self.voter, now=self.now + timedelta(hours=1),
        )
        assert result == {"total_upvotes": 0}

    def test_remove_upvote_outside_window(self):
        organization_service.upvote_organization(self.engine, "TESTORG", self.voter, now=self.now)
        with pytest.raises(InvalidInputError):
            organization_service.remove_upvote(
                self.engine, "TESTORG", self.voter, now=self.now + timedelta(days=8),
            )

    def test_remove_without_upvote(self):
        with pytest.raises(InvalidInputError):
            organization_service.remove_upvote(self.engine, "TESTORG", self.voter)

    def test_status_without_upvote(self):
        status = organization_service.get_upvote_status(self.engine, "TESTORG", self.voter)
        assert status == {
            "has_upvoted": False, "can_upvote": True, "next_upvote_at": None, "total_upvotes": 0,
        }


# ===========================================================================
# Members
# ===========================================================================
class TestMembers:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org = org
        self.member = make_user(db_engine, "Shy")
        add_member(db_engine, org["id"], self.member)

    def test_owner_listed_first(self):
        members = organization_service.list_members(self.engine, "TESTORG")
        assert [m["user_id"] for m in members] == [self.owner, self.member]
        assert members[0]["role_name"] == "Owner"

    def test_hidden_member_only_visible_to_members(self):
        hidden = user_service.toggle_membership_visibility(self.engine, "TESTORG", self.member)
        assert hidden == {"rsi_org_id": "TESTORG", "is_hidden": True}

        public_view = organization_service.list_members(self.engine, "TESTORG")
        assert [m["user_id"] for m in public_view] == [self.owner]

        member_view = organization_service.list_members(self.engine, "TESTORG", self.owner)
        assert len(member_view) == 2

    def test_inactive_members_excluded(self):
        with Session(self.engine) as s:
            row = s.query(OrganizationMember).filter_by(user_id=self.member).one()
            row.is_active = False
            s.commit()
        assert len(organization_service.list_members(self.engine, "TESTORG", self.owner)) == 1

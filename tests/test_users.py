"""
tests/test_users.py — Accounts, RSI Verification & Memberships
================================================================
"""

from __future__ import annotations

import pytest

from conftest import add_member, make_org, make_user
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import notification_service, user_service
from scorgs.services.verification import generate_verification_code


class TestAccounts:

    def test_get_or_create_is_idempotent(self, db_engine):
        first = user_service.get_or_create_user(db_engine, "1001", "Pilot")
        second = user_service.get_or_create_user(db_engine, "1001", "Pilot")
        assert first["id"] == second["id"]

    def test_get_or_create_refreshes_profile(self, db_engine):
        first = user_service.get_or_create_user(db_engine, "1001", "Pilot")
        renamed = user_service.get_or_create_user(db_engine, "1001", "Ace", "https://cdn/avatar.png")
        assert renamed["id"] == first["id"]
        assert renamed["username"] == "Ace"
        assert renamed["avatar_url"] == "https://cdn/avatar.png"

    def test_lookup_by_discord_id(self, db_engine):
        created = user_service.get_or_create_user(db_engine, "1001", "Pilot")
        assert user_service.get_user_by_discord_id(db_engine, "1001")["id"] == created["id"]
        assert user_service.get_user_by_discord_id(db_engine, "9999") is None

    def test_get_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            user_service.get_user(db_engine, "nope")

    def test_verification_code_matches_generator(self, db_engine):
        user_id = make_user(db_engine, "Pilot")
        assert user_service.get_verification_code(user_id) == generate_verification_code(user_id)


class TestRSIVerification:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine):
        self.engine = db_engine
        self.user = make_user(db_engine, "Pilot")
        self.code = generate_verification_code(self.user)

    def test_verify_with_code_in_bio(self):
        result = user_service.verify_rsi_account(
            self.engine, self.user, " PilotHandle ", f"Hello! {self.code}",
        )
        assert result["is_rsi_verified"] is True
        assert result["rsi_handle"] == "PilotHandle"
        assert result["verified_at"] is not None
        assert notification_service.unread_count(self.engine, self.user) == 1

    def test_bio_without_code(self):
        with pytest.raises(InvalidInputError) as exc_info:
            user_service.verify_rsi_account(self.engine, self.user, "PilotHandle", "just a pilot")
        assert exc_info.value.extra == {"verification_code": self.code}

    def test_empty_bio(self):
        with pytest.raises(InvalidInputError):
            user_service.verify_rsi_account(self.engine, self.user, "PilotHandle", None)

    def test_handle_taken_by_another_verified_user(self):
        user_service.verify_rsi_account(self.engine, self.user, "PilotHandle", self.code)
        other = make_user(self.engine, "Copycat")
        with pytest.raises(ConflictError):
            user_service.verify_rsi_account(
                self.engine, other, "pilothandle", generate_verification_code(other),
            )

    def test_reverify_same_handle(self):
        user_service.verify_rsi_account(self.engine, self.user, "PilotHandle", self.code)
        again = user_service.verify_rsi_account(self.engine, self.user, "PilotHandle", self.code)
        assert again["is_rsi_verified"] is True


class TestMemberships:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org = org
        self.member = make_user(db_engine, "Grunt")
        add_member(db_engine, org["id"], self.member)

    def test_list_user_organizations(self):
        other_org = make_org(self.engine, make_user(self.engine, "Other"), "SECOND")
        add_member(self.engine, other_org["id"], self.member, "Recruiter")

        orgs = user_service.list_user_organizations(self.engine, self.member)
        assert {o["rsi_org_id"]: o["role_name"] for o in orgs} == {
            "TESTORG": "Member", "SECOND": "Recruiter",
        }
        assert not any(o["is_owner"] for o in orgs)

    def test_leave_notifies_owner(self):
        user_service.leave_organization(self.engine, "TESTORG", self.member)
        assert user_service.list_user_organizations(self.engine, self.member) == []
        feed = notification_service.list_notifications(self.engine, self.owner)
        assert any(n["title"] == "Member Left" for n in feed["notifications"])

    def test_owner_cannot_leave(self):
        with pytest.raises(PermissionDeniedError):
            user_service.leave_organization(self.engine, "TESTORG", self.owner)

    def test_non_member_cannot_leave(self):
        stranger = make_user(self.engine, "Stranger")
        with pytest.raises(NotFoundError):
            user_service.leave_organization(self.engine, "TESTORG", stranger)

    def test_toggle_visibility_twice(self):
        assert user_service.toggle_membership_visibility(self.engine, "testorg", self.member)["is_hidden"]
        assert not user_service.toggle_membership_visibility(self.engine, "testorg", self.member)["is_hidden"]

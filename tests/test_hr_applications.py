"""
tests/test_hr_applications.py — Membership Application Workflow
=================================================================
Submission rules, the review state machine, approval invites, bulk
processing, and the read side.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import add_member, make_user
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import hr_application_service as apps
from scorgs.services import invite_service, notification_service


class TestValidation:

    def test_accepts_known_fields(self):
        apps.validate_application_data({"cover_letter": "Hi", "custom_fields": {"ship": "Cutlass"}})

    def test_field_too_long(self):
        with pytest.raises(InvalidInputError, match="availability"):
            apps.validate_application_data({"availability": "x" * 1001})

    def test_field_must_be_string(self):
        with pytest.raises(InvalidInputError, match="must be a string"):
            apps.validate_application_data({"experience": 12})

    def test_custom_fields_shape_and_size(self):
        with pytest.raises(InvalidInputError, match="object"):
            apps.validate_application_data({"custom_fields": ["a"]})
        with pytest.raises(InvalidInputError, match="serialize"):
            apps.validate_application_data({"custom_fields": {"blob": "x" * 10_001}})

    def test_valid_transitions(self):
        assert apps.valid_transitions("pending") == ["under_review", "rejected"]
        assert apps.valid_transitions("approved") == []
        assert apps.valid_transitions("bogus") == []


# ===========================================================================
# Submit
# ===========================================================================
class TestSubmit:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.applicant = make_user(db_engine, "Hopeful")

    def test_submit_notifies_owner(self):
        app = apps.submit_application(self.engine, self.org_id, self.applicant, {"cover_letter": "Pick me"})
        assert app["status"] == "pending"
        assert app["valid_transitions"] == ["under_review", "rejected"]
        assert app["application_data"] == {"cover_letter": "Pick me"}
        feed = notification_service.list_notifications(self.engine, self.owner)
        assert any(n["message"] == "Hopeful applied to join Test Squadron" for n in feed["notifications"])

    def test_history_starts_pending(self):
        app = apps.submit_application(self.engine, self.org_id, self.applicant, {})
        history = apps.application_history(self.engine, app["id"])
        assert [h["status"] for h in history] == ["pending"]
        assert history[0]["changed_by"] == self.applicant

    def test_duplicate_in_flight(self):
        apps.submit_application(self.engine, self.org_id, self.applicant, {})
        with pytest.raises(ConflictError, match="active application"):
            apps.submit_application(self.engine, self.org_id, self.applicant, {})

    def test_member_cannot_apply(self):
        with pytest.raises(ConflictError, match="already a member"):
            apps.submit_application(self.engine, self.org_id, self.owner, {})

    def test_unknown_org(self):
        with pytest.raises(NotFoundError):
            apps.submit_application(self.engine, "nope", self.applicant, {})

    def test_reapply_window_after_rejection(self):
        app = apps.submit_application(self.engine, self.org_id, self.applicant, {})
        apps.update_status(self.engine, app["id"], "rejected", self.owner, rejection_reason="Not yet")

        with pytest.raises(ConflictError) as exc_info:
            apps.submit_application(self.engine, self.org_id, self.applicant, {})
        assert "can_reapply_at" in exc_info.value.extra

        later = datetime.now(UTC) + timedelta(days=31)
        again = apps.submit_application(self.engine, self.org_id, self.applicant, {}, now=later)
        assert again["status"] == "pending"

    def test_custom_reapply_days(self):
        app = apps.submit_application(self.engine, self.org_id, self.applicant, {})
        apps.update_status(self.engine, app["id"], "rejected", self.owner, rejection_reason="No")
        again = apps.submit_application(
            self.engine, self.org_id, self.applicant, {},
            reapply_days=1, now=datetime.now(UTC) + timedelta(days=2),
        )
        assert again["id"] != app["id"]

    def test_approved_blocks_resubmission(self):
        app = apps.submit_application(self.engine, self.org_id, self.applicant, {})
        apps.update_status(self.engine, app["id"], "under_review", self.owner)
        apps.update_status(self.engine, app["id"], "approved", self.owner)
        with pytest.raises(ConflictError, match="already approved"):
            apps.submit_application(self.engine, self.org_id, self.applicant, {})


# ===========================================================================
# Review
# ===========================================================================
class TestReview:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.applicant = make_user(db_engine, "Hopeful")
        self.app = apps.submit_application(db_engine, self.org_id, self.applicant, {})

    def test_full_path_to_approval(self):
        apps.update_status(self.engine, self.app["id"], "under_review", self.owner, notes="Looks good")
        apps.update_status(self.engine, self.app["id"], "interview_scheduled", self.owner)
        approved = apps.update_status(self.engine, self.app["id"], "approved", self.owner)

        assert approved["status"] == "approved"
        assert approved["reviewer_id"] == self.owner
        assert approved["review_notes"] == "Looks good"
        assert approved["valid_transitions"] == []
        assert approved["invite_code"]

        history = apps.application_history(self.engine, self.app["id"])
        assert [h["status"] for h in history] == [
            "pending", "under_review", "interview_scheduled", "approved",
        ]

    def test_approval_invite_joins_as_member(self):
        apps.update_status(self.engine, self.app["id"], "under_review", self.owner)
        approved = apps.update_status(self.engine, self.app["id"], "approved", self.owner)
        joined = invite_service.use_invite(self.engine, approved["invite_code"], self.applicant)
        assert joined["role_name"] == "Member"

    def test_applicant_notified(self):
        apps.update_status(self.engine, self.app["id"], "under_review", self.owner)
        feed = notification_service.list_notifications(self.engine, self.applicant)
        assert feed["notifications"][0]["message"] == (
            "Your application to Test Squadron is now under_review"
        )

    def test_invalid_transition_lists_options(self):
        with pytest.raises(InvalidInputError) as exc_info:
            apps.update_status(self.engine, self.app["id"], "approved", self.owner)
        assert exc_info.value.extra["valid_transitions"] == ["under_review", "rejected"]

    def test_unknown_status(self):
        with pytest.raises(InvalidInputError, match="Unknown status"):
            apps.update_status(self.engine, self.app["id"], "hired", self.owner)

    def test_rejection_requires_reason(self):
        with pytest.raises(InvalidInputError, match="reason"):
            apps.update_status(self.engine, self.app["id"], "rejected", self.owner, rejection_reason="  ")
        rejected = apps.update_status(
            self.engine, self.app["id"], "rejected", self.owner, rejection_reason=" Too new ",
        )
        assert rejected["rejection_reason"] == "Too new"

    def test_terminal_states(self):
        apps.update_status(self.engine, self.app["id"], "rejected", self.owner, rejection_reason="No")
        with pytest.raises(InvalidInputError):
            apps.update_status(self.engine, self.app["id"], "under_review", self.owner)

    def test_recruiter_may_process(self):
        recruiter = make_user(self.engine, "Recruiter")
        add_member(self.engine, self.org_id, recruiter, "Recruiter")
        result = apps.update_status(self.engine, self.app["id"], "under_review", recruiter)
        assert result["reviewer_id"] == recruiter

    def test_member_cannot_process(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org_id, member)
        with pytest.raises(PermissionDeniedError):
            apps.update_status(self.engine, self.app["id"], "under_review", member)

    def test_unknown_application(self):
        with pytest.raises(NotFoundError):
            apps.update_status(self.engine, "nope", "under_review", self.owner)


class TestBulkUpdate:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.first = apps.submit_application(db_engine, self.org_id, make_user(db_engine, "A"), {})
        self.second = apps.submit_application(db_engine, self.org_id, make_user(db_engine, "B"), {})

    def test_each_item_independent(self):
        apps.update_status(self.engine, self.second["id"], "under_review", self.owner)
        apps.update_status(self.engine, self.second["id"], "approved", self.owner)

        results = apps.bulk_update_status(
            self.engine, self.org_id, [self.first["id"], self.second["id"], "missing"],
            "under_review", self.owner,
        )
        assert results[0] == {"id": self.first["id"], "success": True, "status": "under_review"}
        assert results[1]["success"] is False
        assert "Cannot change status" in results[1]["error"]
        assert results[2] == {"id": "missing", "success": False, "error": "Application not found"}

    def test_permission_failure_reported_per_item(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org_id, member)
        results = apps.bulk_update_status(
            self.engine, self.org_id, [self.first["id"]], "under_review", member,
        )
        assert results[0]["success"] is False
        assert apps.get_application(self.engine, self.first["id"])["status"] == "pending"


# ===========================================================================
# Queries
# ===========================================================================
class TestQueries:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.applicant = make_user(db_engine, "Hopeful")
        self.app = apps.submit_application(db_engine, self.org_id, self.applicant, {})
        self.other = apps.submit_application(db_engine, self.org_id, make_user(db_engine, "Other"), {})
        apps.update_status(db_engine, self.other["id"], "under_review", owner)

    def test_list_with_status_filter(self):
        everything = apps.list_applications(self.engine, self.org_id)
        assert everything["total"] == 2

        pending = apps.list_applications(self.engine, self.org_id, status="pending")
        assert pending["total"] == 1
        assert pending["applications"][0]["username"] == "Hopeful"

    def test_list_pagination(self):
        page = apps.list_applications(self.engine, self.org_id, page=2, limit=1)
        assert page["page"] == 2
        assert len(page["applications"]) == 1

    def test_get_scoped_to_org(self):
        assert apps.get_application(self.engine, self.app["id"])["username"] == "Hopeful"
        with pytest.raises(NotFoundError):
            apps.get_application(self.engine, self.app["id"], "another-org")

    def test_list_my_applications(self):
        mine = apps.list_my_applications(self.engine, self.applicant)
        assert [a["id"] for a in mine] == [self.app["id"]]
        assert apps.list_my_applications(self.engine, self.owner) == []

"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface through ``TestClient`` against the in-memory
database and the mocked RSI site from ``conftest``.

These tests verify:
- Auth guards and the error body shape (``{"detail": ..., **extra}``)
- Status codes for creates, deletes and upstream failures
- That each router is mounted under ``/api``
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import add_member, auth, make_org, make_user
from scorgs.services import hr_performance_service
from scorgs.services.verification import generate_verification_code


def _org_html(code: str, name: str = "Test Squadron", spectrum_id: str = "TESTORG") -> str:
    return f"""
    <html>
    <head><title>{name} [{spectrum_id}] - Organizations - Roberts Space Industries</title></head>
    <body>
      <div class="headline">Best in the verse</div>
      <div class="count">42 members</div>
      <div class="body markitup-text"><p>We fly together. {code}</p></div>
    </body>
    </html>
    """


def _citizen_html(bio: str) -> str:
    return f"""
    <html><body>
      <div class="bio"><span class="label">Bio</span><div class="value">{bio}</div></div>
    </body></html>
    """


# ===========================================================================
# Health & auth
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuth:

    @pytest.fixture(autouse=True)
    def _setup(self, client, db_engine, rsi_pages):
        self.client = client
        self.pages = rsi_pages
        self.user = make_user(db_engine, "Pilot")

    def test_missing_token(self):
        resp = self.client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Missing token"}

    def test_invalid_token(self):
        resp = self.client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_unknown_user(self):
        resp = self.client.get("/api/auth/me", headers=auth("ghost"))
        assert resp.status_code == 401

    def test_me(self):
        resp = self.client.get("/api/auth/me", headers=auth(self.user))
        assert resp.status_code == 200
        assert resp.json()["username"] == "Pilot"

    def test_verification_code(self):
        resp = self.client.get("/api/auth/verification-code", headers=auth(self.user))
        assert resp.json()["verification_code"] == generate_verification_code(self.user)

    def test_verify_rsi(self):
        code = generate_verification_code(self.user)
        self.pages["/en/citizens/PilotHandle"] = _citizen_html(f"o7 {code}")
        resp = self.client.post(
            "/api/auth/verify-rsi", json={"rsi_handle": "PilotHandle"}, headers=auth(self.user),
        )
        assert resp.status_code == 200
        assert resp.json()["is_rsi_verified"] is True

    def test_verify_rsi_wrong_bio(self):
        self.pages["/en/citizens/PilotHandle"] = _citizen_html("just a pilot")
        resp = self.client.post(
            "/api/auth/verify-rsi", json={"rsi_handle": "PilotHandle"}, headers=auth(self.user),
        )
        assert resp.status_code == 400
        assert resp.json()["verification_code"] == generate_verification_code(self.user)

    def test_verify_rsi_profile_unavailable(self):
        resp = self.client.post(
            "/api/auth/verify-rsi", json={"rsi_handle": "Nobody"}, headers=auth(self.user),
        )
        assert resp.status_code == 502
        assert "Nobody" in resp.json()["detail"]

    def test_public_profile_hides_discord_id(self):
        resp = self.client.get(f"/api/users/{self.user}")
        assert resp.status_code == 200
        assert "discord_id" not in resp.json()


# ===========================================================================
# Organizations
# ===========================================================================
class TestOrganizationRoutes:

    @pytest.fixture(autouse=True)
    def _setup(self, client, db_engine, owner, rsi_pages):
        self.client = client
        self.engine = db_engine
        self.owner = owner
        self.pages = rsi_pages

    def _register(self) -> dict:
        self.pages["/en/orgs/TESTORG"] = _org_html(generate_verification_code(self.owner))
        resp = self.client.post(
            "/api/organizations",
            json={"rsi_org_id": "testorg", "languages": ["English"]},
            headers=auth(self.owner),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    def test_register(self):
        org = self._register()
        assert org["rsi_org_id"] == "TESTORG"
        assert org["name"] == "Test Squadron"
        listed = self.client.get("/api/organizations").json()
        assert listed["total"] == 1

    def test_register_without_page(self):
        resp = self.client.post("/api/organizations", json={"rsi_org_id": "GHOST"}, headers=auth(self.owner))
        assert resp.status_code == 502

    def test_register_without_sentinel(self):
        self.pages["/en/orgs/TESTORG"] = _org_html("")
        resp = self.client.post("/api/organizations", json={"rsi_org_id": "TESTORG"}, headers=auth(self.owner))
        assert resp.status_code == 400
        assert resp.json()["verification_code"].startswith("[SCORGS:")

    def test_register_requires_auth(self):
        resp = self.client.post("/api/organizations", json={"rsi_org_id": "TESTORG"})
        assert resp.status_code == 401

    def test_get_and_update(self):
        self._register()
        assert self.client.get("/api/organizations/testorg").status_code == 200
        assert self.client.get("/api/organizations/NOPE").status_code == 404

        empty = self.client.put("/api/organizations/TESTORG", json={}, headers=auth(self.owner))
        assert empty.status_code == 400
        updated = self.client.put(
            "/api/organizations/TESTORG", json={"headline": "New"}, headers=auth(self.owner),
        )
        assert updated.json()["headline"] == "New"

    def test_verify_and_sentinel(self):
        self._register()
        sentinel = self.client.get(
            "/api/organizations/TESTORG/verification-sentinel", headers=auth(self.owner),
        ).json()["verification_sentinel"]
        self.pages["/en/orgs/TESTORG"] = _org_html(sentinel)
        resp = self.client.post("/api/organizations/TESTORG/verify", headers=auth(self.owner))
        assert resp.status_code == 200
        assert resp.json()["is_registered"] is True

    def test_upvotes(self):
        self._register()
        fan = make_user(self.engine, "Fan")
        first = self.client.post("/api/organizations/TESTORG/upvote", headers=auth(fan))
        assert first.json() == {"total_upvotes": 1}
        second = self.client.post("/api/organizations/TESTORG/upvote", headers=auth(fan))
        assert second.status_code == 409
        assert "next_upvote_at" in second.json()
        status = self.client.get("/api/organizations/TESTORG/upvote", headers=auth(fan)).json()
        assert status["has_upvoted"] is True
        removed = self.client.delete("/api/organizations/TESTORG/upvote", headers=auth(fan))
        assert removed.json() == {"total_upvotes": 0}

    def test_members_leave_and_visibility(self):
        org = self._register()
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, org["id"], member)

        members = self.client.get("/api/organizations/TESTORG/members").json()["members"]
        assert len(members) == 2

        hidden = self.client.patch("/api/organizations/TESTORG/visibility", headers=auth(member))
        assert hidden.json()["is_hidden"] is True
        public = self.client.get("/api/organizations/TESTORG/members").json()["members"]
        assert len(public) == 1

        assert self.client.post("/api/organizations/TESTORG/leave", headers=auth(member)).status_code == 204
        assert self.client.post("/api/organizations/TESTORG/leave", headers=auth(self.owner)).status_code == 403

    def test_delete(self):
        self._register()
        assert self.client.delete("/api/organizations/TESTORG", headers=auth(self.owner)).status_code == 204
        assert self.client.get("/api/organizations/TESTORG").status_code == 404


# ===========================================================================
# Roles, invites & membership
# ===========================================================================
class TestMembershipRoutes:

    @pytest.fixture(autouse=True)
    def _setup(self, client, db_engine, owner, org):
        self.client = client
        self.engine = db_engine
        self.owner = owner
        self.org = org

    def test_roles_require_membership(self):
        outsider = make_user(self.engine, "Outsider")
        resp = self.client.get("/api/organizations/TESTORG/roles", headers=auth(outsider))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Not a member of this organization"

        roles = self.client.get("/api/organizations/TESTORG/roles", headers=auth(self.owner)).json()["roles"]
        assert roles[0]["name"] == "Owner"

    def test_my_permissions(self):
        mine = self.client.get("/api/organizations/TESTORG/permissions/me", headers=auth(self.owner)).json()
        assert mine["is_owner"] is True
        assert "manage_roles" in mine["permissions"]

    def test_invite_flow(self):
        created = self.client.post(
            "/api/organizations/TESTORG/invites", json={"max_uses": 1}, headers=auth(self.owner),
        )
        assert created.status_code == 201
        code = created.json()["code"]

        joiner = make_user(self.engine, "Recruit")
        joined = self.client.post(f"/api/invites/{code}/accept", headers=auth(joiner))
        assert joined.status_code == 200
        assert joined.json()["role_name"] == "Member"

        mine = self.client.get("/api/users/me/organizations", headers=auth(joiner)).json()
        assert [o["rsi_org_id"] for o in mine["organizations"]] == ["TESTORG"]

        stats = self.client.get("/api/organizations/TESTORG/invites/stats", headers=auth(self.owner)).json()
        assert stats["total_uses"] == 1
        assert self.client.get("/api/organizations/TESTORG/invites/stats", headers=auth(joiner)).status_code == 403

    def test_unknown_invite(self):
        resp = self.client.post("/api/invites/NOPE/accept", headers=auth(self.owner))
        assert resp.status_code == 404

    def test_notifications(self):
        invite = self.client.post("/api/organizations/TESTORG/invites", json={}, headers=auth(self.owner)).json()
        self.client.post(f"/api/invites/{invite['code']}/accept", headers=auth(make_user(self.engine, "Recruit")))

        count = self.client.get("/api/notifications/unread-count", headers=auth(self.owner)).json()
        assert count["unread_count"] >= 1
        feed = self.client.get("/api/notifications", headers=auth(self.owner)).json()
        assert any(n["title"] == "New Member Joined" for n in feed["notifications"])

        cleared = self.client.post("/api/notifications/read-all", headers=auth(self.owner)).json()
        assert cleared["updated"] == count["unread_count"]

    def test_discord_guild_status(self):
        resp = self.client.get("/api/discord/guilds/123")
        assert resp.json() == {"connected": False, "guild_id": "123"}
        link = self.client.get("/api/organizations/TESTORG/discord", headers=auth(self.owner)).json()
        assert link == {"connected": False, "server": None}


# ===========================================================================
# Events
# ===========================================================================
class TestEventRoutes:

    @pytest.fixture(autouse=True)
    def _setup(self, client, db_engine, owner, org):
        self.client = client
        self.engine = db_engine
        self.owner = owner
        self.start = (datetime.now(UTC) + timedelta(days=3)).isoformat()

    def test_create_register_and_list(self):
        created = self.client.post(
            "/api/events",
            json={"title": "Mining Op", "start_time": self.start, "rsi_org_id": "TESTORG"},
            headers=auth(self.owner),
        )
        assert created.status_code == 201
        event = created.json()
        assert event["discord_sync_scheduled"] is False

        pilot = make_user(self.engine, "Pilot")
        registered = self.client.post(f"/api/events/{event['id']}/register", headers=auth(pilot))
        assert registered.status_code == 201
        again = self.client.post(f"/api/events/{event['id']}/register", headers=auth(pilot))
        assert again.status_code == 409

        listed = self.client.get("/api/events", params={"rsi_org_id": "TESTORG"}).json()
        assert [e["title"] for e in listed["events"]] == ["Mining Op"]

    def test_validation_errors(self):
        resp = self.client.post("/api/events", json={"title": "", "start_time": self.start}, headers=auth(self.owner))
        assert resp.status_code == 422

    def test_cancel(self):
        event = self.client.post(
            "/api/events", json={"title": "Race", "start_time": self.start}, headers=auth(self.owner),
        ).json()
        assert self.client.delete(f"/api/events/{event['id']}", headers=auth(self.owner)).status_code == 204
        assert self.client.get(f"/api/events/{event['id']}").json()["is_active"] is False

    def test_private_event_needs_membership(self):
        event = self.client.post(
            "/api/events",
            json={"title": "Staff Meeting", "start_time": self.start, "rsi_org_id": "TESTORG", "is_public": False},
            headers=auth(self.owner),
        ).json()
        stranger = make_user(self.engine, "Stranger")
        assert self.client.get(f"/api/events/{event['id']}").status_code == 404
        assert self.client.get(f"/api/events/{event['id']}", headers=auth(stranger)).status_code == 404
        seen = self.client.get(f"/api/events/{event['id']}", headers=auth(self.owner))
        assert seen.json()["title"] == "Staff Meeting"


# ===========================================================================
# HR
# ===========================================================================
class TestHRRoutes:

    @pytest.fixture(autouse=True)
    def _setup(self, client, db_engine, owner, org):
        self.client = client
        self.engine = db_engine
        self.owner = owner
        self.org = org

    def test_application_flow(self):
        applicant = make_user(self.engine, "Hopeful")
        submitted = self.client.post(
            "/api/organizations/TESTORG/applications",
            json={"cover_letter": "Pick me"},
            headers=auth(applicant),
        )
        assert submitted.status_code == 201
        app_id = submitted.json()["id"]

        listed = self.client.get("/api/organizations/TESTORG/applications", headers=auth(self.owner)).json()
        assert listed["total"] == 1

        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org["id"], member)
        denied = self.client.get("/api/organizations/TESTORG/applications", headers=auth(member))
        assert denied.status_code == 403

        bad = self.client.put(
            f"/api/organizations/TESTORG/applications/{app_id}/status",
            json={"status": "approved"},
            headers=auth(self.owner),
        )
        assert bad.status_code == 400
        assert bad.json()["valid_transitions"] == ["under_review", "rejected"]

        detail = self.client.get(
            f"/api/organizations/TESTORG/applications/{app_id}", headers=auth(self.owner),
        ).json()
        assert [h["status"] for h in detail["history"]] == ["pending"]

        mine = self.client.get("/api/users/me/applications", headers=auth(applicant)).json()
        assert [a["id"] for a in mine["applications"]] == [app_id]

    def test_goal_progress_through_another_org(self):
        pilot = make_user(self.engine, "Pilot")
        add_member(self.engine, self.org["id"], pilot)
        review = hr_performance_service.create_review(
            self.engine, self.org["id"], self.owner, reviewee_id=pilot,
            review_period_start=datetime(2026, 1, 1, tzinfo=UTC),
            review_period_end=datetime(2026, 6, 30, tzinfo=UTC),
        )
        goal = hr_performance_service.add_goal(self.engine, review["id"], self.owner, title="Log 50 hours")
        make_org(self.engine, make_user(self.engine, "RivalOwner"), "RIVALS")

        foreign = self.client.put(
            f"/api/organizations/RIVALS/performance/goals/{goal['id']}/progress",
            json={"progress": 60}, headers=auth(pilot),
        )
        assert foreign.status_code == 404
        home = self.client.put(
            f"/api/organizations/TESTORG/performance/goals/{goal['id']}/progress",
            json={"progress": 60}, headers=auth(pilot),
        )
        assert home.json()["progress_percentage"] == 60

    def test_skill_catalogue(self):
        created = self.client.post(
            "/api/skills", json={"name": "Salvage", "category": "logistics"}, headers=auth(self.owner),
        )
        assert created.status_code == 201
        duplicate = self.client.post(
            "/api/skills", json={"name": "salvage", "category": "logistics"}, headers=auth(self.owner),
        )
        assert duplicate.status_code == 409
        assert [s["name"] for s in self.client.get("/api/skills").json()["skills"]] == ["Salvage"]

    def test_document_validation_endpoint(self):
        resp = self.client.post(
            "/api/organizations/TESTORG/documents/validate",
            json={"content": "<script>alert(1)</script>"},
            headers=auth(self.owner),
        )
        assert resp.status_code == 200
        assert resp.json()["is_valid"] is False

    def test_document_create_rejects_bad_markdown(self):
        resp = self.client.post(
            "/api/organizations/TESTORG/documents",
            json={"title": "Bad", "content": "<iframe src=x>"},
            headers=auth(self.owner),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["errors"]
        assert "warnings" in body

"""
tests/test_hr_skills.py — Skill Catalogue, Member Skills & Certifications
===========================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import add_member, make_user
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import hr_skill_service as skills


class TestCatalogue:

    def test_create_and_list(self, db_engine):
        skills.create_skill(db_engine, name="Quantum Navigation", category="pilot")
        skills.create_skill(db_engine, name="Field Surgery", category="medic", verification_required=True)
        listed = skills.list_skills(db_engine)
        assert [s["name"] for s in listed] == ["Field Surgery", "Quantum Navigation"]
        assert listed[0]["verification_required"] is True
        assert [s["name"] for s in skills.list_skills(db_engine, category="pilot")] == ["Quantum Navigation"]

    def test_duplicate_name_case_insensitive(self, db_engine):
        skills.create_skill(db_engine, name="Mining", category="logistics")
        with pytest.raises(ConflictError):
            skills.create_skill(db_engine, name=" mining ", category="logistics")

    def test_unknown_category(self, db_engine):
        with pytest.raises(InvalidInputError, match="Category"):
            skills.create_skill(db_engine, name="Cooking", category="chef")

    def test_blank_name(self, db_engine):
        with pytest.raises(InvalidInputError):
            skills.create_skill(db_engine, name="  ", category="pilot")


# ===========================================================================
# Member skills
# ===========================================================================
class TestUserSkills:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.pilot = make_user(db_engine, "Pilot")
        add_member(db_engine, self.org_id, self.pilot)
        self.skill = skills.create_skill(db_engine, name="Dogfighting", category="pilot")

    def _add(self, user=None, level="advanced") -> dict:
        return skills.add_user_skill(
            self.engine, self.org_id, user or self.pilot, skill_id=self.skill["id"], proficiency_level=level,
        )

    def test_add(self):
        row = self._add()
        assert row["skill_name"] == "Dogfighting"
        assert row["verified"] is False

    def test_add_twice(self):
        self._add()
        with pytest.raises(ConflictError):
            self._add()

    def test_bad_proficiency(self):
        with pytest.raises(InvalidInputError, match="Proficiency"):
            self._add(level="godlike")

    def test_outsider_cannot_add(self):
        with pytest.raises(PermissionDeniedError):
            self._add(make_user(self.engine, "Stranger"))

    def test_unknown_skill(self):
        with pytest.raises(NotFoundError):
            skills.add_user_skill(
                self.engine, self.org_id, self.pilot, skill_id="nope", proficiency_level="beginner",
            )

    def test_verify(self):
        row = self._add()
        verified = skills.verify_user_skill(self.engine, row["id"], self.owner)
        assert verified["verified"] is True
        assert verified["verified_by"] == self.owner
        assert verified["verified_at"] is not None

    def test_cannot_verify_own_skill(self):
        row = self._add(self.owner)
        with pytest.raises(PermissionDeniedError, match="own"):
            skills.verify_user_skill(self.engine, row["id"], self.owner)

    def test_member_cannot_verify(self):
        row = self._add()
        peer = make_user(self.engine, "Peer")
        add_member(self.engine, self.org_id, peer)
        with pytest.raises(PermissionDeniedError):
            skills.verify_user_skill(self.engine, row["id"], peer)

    def test_changed_proficiency_clears_verification(self):
        row = self._add()
        skills.verify_user_skill(self.engine, row["id"], self.owner)

        notes_only = skills.update_user_skill(self.engine, row["id"], self.pilot, notes="Arena Commander")
        assert notes_only["verified"] is True

        relevelled = skills.update_user_skill(self.engine, row["id"], self.pilot, proficiency_level="expert")
        assert relevelled["proficiency_level"] == "expert"
        assert relevelled["verified"] is False
        assert relevelled["verified_by"] is None

    def test_update_foreign_record(self):
        row = self._add()
        with pytest.raises(NotFoundError):
            skills.update_user_skill(self.engine, row["id"], self.owner, notes="mine now")

    def test_list_and_matrix(self):
        row = self._add()
        self._add(self.owner, level="expert")
        skills.verify_user_skill(self.engine, row["id"], self.owner)

        listed = skills.list_user_skills(self.engine, self.org_id, user_id=self.pilot)
        assert [r["username"] for r in listed] == ["Pilot"]

        [entry] = skills.skill_matrix(self.engine, self.org_id)
        assert entry["skill_name"] == "Dogfighting"
        assert entry["total"] == 2
        assert entry["verified"] == 1
        assert entry["proficiency"] == {"beginner": 0, "intermediate": 0, "advanced": 1, "expert": 1}


# ===========================================================================
# Certifications
# ===========================================================================
class TestCertifications:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        self.pilot = make_user(db_engine, "Pilot")
        add_member(db_engine, self.org_id, self.pilot)
        self.now = datetime.now(UTC)

    def _certify(self, name="Combat Pilot I", **kwargs) -> dict:
        fields = {"user_id": self.pilot, "name": name, "issued_date": self.now - timedelta(days=10)}
        fields.update(kwargs)
        return skills.add_certification(self.engine, self.org_id, self.owner, **fields)

    def test_add_and_list(self):
        cert = self._certify()
        assert cert["issued_by"] == self.owner
        assert [c["id"] for c in skills.list_certifications(self.engine, self.org_id, user_id=self.pilot)] == [
            cert["id"],
        ]

    def test_expiry_after_issue(self):
        with pytest.raises(InvalidInputError, match="Expiration"):
            self._certify(expiration_date=self.now - timedelta(days=20))

    def test_non_member_recipient(self):
        with pytest.raises(InvalidInputError):
            self._certify(user_id=make_user(self.engine, "Stranger"))

    def test_expiring_window(self):
        soon = self._certify("Soon", expiration_date=self.now + timedelta(days=5))
        self._certify("Later", expiration_date=self.now + timedelta(days=60))
        self._certify("Lapsed", expiration_date=self.now - timedelta(days=1))
        self._certify("Forever")

        expiring = skills.expiring_certifications(self.engine, self.org_id, now=self.now)
        assert [c["id"] for c in expiring] == [soon["id"]]
        wide = skills.expiring_certifications(self.engine, self.org_id, within_days=90, now=self.now)
        assert [c["name"] for c in wide] == ["Soon", "Later"]

    def test_delete(self):
        cert = self._certify()
        with pytest.raises(PermissionDeniedError):
            skills.delete_certification(self.engine, cert["id"], self.pilot)
        skills.delete_certification(self.engine, cert["id"], self.owner)
        assert skills.list_certifications(self.engine, self.org_id) == []
        with pytest.raises(NotFoundError):
            skills.delete_certification(self.engine, cert["id"], self.owner)

"""
tests/test_document_versions.py — Document Change Detection Tests
===================================================================
Pure functions: no database.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from scorgs.services.document_versions import (
    change_summary,
    compare_versions,
    detect_changes,
    line_diff,
    version_statistics,
)


def _version(**overrides) -> dict:
    base = {
        "title": "Code of Conduct",
        "description": "How we behave",
        "content": "x" * 100,
        "folder_path": "/policies",
        "requires_acknowledgment": True,
        "access_roles": [],
        "word_count": 100,
        "estimated_reading_time": 1,
    }
    base.update(overrides)
    return base


# ===========================================================================
# detect_changes
# ===========================================================================
class TestDetectChanges:

    def test_initial_version(self):
        changes = detect_changes(None, _version())
        assert changes["change_summary"] == "Initial version"
        assert changes["content_changed"] is True
        assert changes["requires_reacknowledgment"] is False

    def test_no_changes(self):
        changes = detect_changes(_version(), _version())
        assert changes["change_summary"] == "Minor updates"
        assert not changes["requires_reacknowledgment"]

    def test_small_content_edit_keeps_acknowledgments(self):
        changes = detect_changes(_version(), _version(content="x" * 105))
        assert changes["content_changed"]
        assert not changes["requires_reacknowledgment"]

    def test_large_content_edit_requires_reacknowledgment(self):
        changes = detect_changes(_version(), _version(content="x" * 111))
        assert changes["requires_reacknowledgment"]

    def test_exactly_threshold_does_not_trigger(self):
        changes = detect_changes(_version(), _version(content="x" * 110))
        assert not changes["requires_reacknowledgment"]

    def test_custom_threshold(self):
        changes = detect_changes(_version(), _version(content="x" * 105), threshold=0.01)
        assert changes["requires_reacknowledgment"]

    def test_acknowledgment_newly_required(self):
        old = _version(requires_acknowledgment=False)
        changes = detect_changes(old, _version(requires_acknowledgment=True))
        assert changes["acknowledgment_requirement_changed"]
        assert changes["requires_reacknowledgment"]

    def test_acknowledgment_dropped_does_not_trigger(self):
        changes = detect_changes(_version(), _version(requires_acknowledgment=False))
        assert not changes["requires_reacknowledgment"]

    def test_access_restricted_from_everyone(self):
        changes = detect_changes(_version(), _version(access_roles=["role-a"]))
        assert changes["access_roles_changed"]
        assert changes["requires_reacknowledgment"]

    def test_access_narrowed_to_subset(self):
        old = _version(access_roles=["role-a", "role-b"])
        changes = detect_changes(old, _version(access_roles=["role-a"]))
        assert changes["requires_reacknowledgment"]

    def test_access_widened_does_not_trigger(self):
        old = _version(access_roles=["role-a"])
        changes = detect_changes(old, _version(access_roles=["role-a", "role-b"]))
        assert changes["access_roles_changed"]
        assert not changes["requires_reacknowledgment"]

    def test_role_order_is_ignored(self):
        old = _version(access_roles=["b", "a"])
        changes = detect_changes(old, _version(access_roles=["a", "b"]))
        assert not changes["access_roles_changed"]

    def test_deltas(self):
        changes = detect_changes(_version(), _version(word_count=450, estimated_reading_time=3))
        assert changes["word_count_delta"] == 350
        assert changes["reading_time_delta"] == 2


# ===========================================================================
# change_summary
# ===========================================================================
class TestChangeSummary:

    def test_single_phrase_capitalised(self):
        assert change_summary({"title_changed": True}) == "Title updated"

    def test_two_phrases(self):
        summary = change_summary({"title_changed": True, "content_changed": True})
        assert summary == "title updated and content modified"

    def test_three_phrases(self):
        summary = change_summary({
            "title_changed": True,
            "folder_changed": True,
            "access_roles_changed": True,
        })
        assert summary == "title updated, moved to different folder and access permissions updated"

    def test_nothing(self):
        assert change_summary({}) == "Minor updates"


# ===========================================================================
# Diffs & statistics
# ===========================================================================
class TestLineDiff:

    def test_positional_diff(self):
        diff = line_diff("a\nb\nc", "a\nB")
        assert diff["modifications"] == ["~2: b → B"]
        assert diff["deletions"] == ["-3: c"]
        assert diff["additions"] == []

    def test_additions(self):
        diff = line_diff("a", "a\nb")
        assert diff["additions"] == ["+2: b"]


class TestCompareVersions:

    def test_content_diff_only_when_content_changed(self):
        v1 = _version(version_number=1)
        v2 = _version(version_number=2, title="New title")
        result = compare_versions(v1, v2)
        assert result["from_version"] == 1
        assert result["to_version"] == 2
        assert result["changes"]["title_changed"]
        assert result["content_diff"] is None

    def test_content_diff_present(self):
        v1 = _version(version_number=1, content="line one")
        v2 = _version(version_number=3, content="line one\nline two")
        result = compare_versions(v1, v2)
        assert result["content_diff"]["additions"] == ["+2: line two"]


class TestVersionStatistics:

    def test_empty(self):
        stats = version_statistics([])
        assert stats["total_versions"] == 0
        assert stats["first_version_date"] is None
        assert stats["version_frequency"] == 0.0

    def test_frequency_and_contributors(self):
        start = datetime(2954, 1, 1, tzinfo=UTC)
        versions = [
            {"created_at": start, "created_by": "u1"},
            {"created_at": start + timedelta(days=1), "created_by": "u2"},
            {"created_at": start + timedelta(days=4), "created_by": "u1"},
            {"created_at": start + timedelta(days=4, hours=1), "created_by": "u1"},
        ]
        stats = version_statistics(versions)
        assert stats["total_versions"] == 4
        assert stats["total_contributors"] == 2
        assert stats["first_version_date"] == start.isoformat()
        # 4 versions over ceil(4.04 days) = 5 days
        assert stats["version_frequency"] == pytest.approx(0.8)

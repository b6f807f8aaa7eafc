"""
scorgs.services.document_versions — Change detection between document versions
================================================================================

Pure functions over version snapshots (plain dicts with the keys of an
``hr_document_versions`` row).  ``hr_document_service`` uses
:func:`detect_changes` on every update to decide the change summary and
whether existing acknowledgments must be invalidated.

Re-acknowledgment is required when:

* acknowledgment becomes required where it was not before
* the content length moves by more than ``reacknowledgment_threshold``
  (10 % by default) of the old length
* access goes from "everyone" (no roles) to a restricted role list
* the role list shrinks to a non-empty strict subset of the old one
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable

from scorgs.config import DEFAULT_CONFIG
from scorgs.services.common import as_utc, iso

_SUMMARY_PHRASES = (
    ("title_changed", "title updated"),
    ("description_changed", "description updated"),
    ("content_changed", "content modified"),
    ("folder_changed", "moved to different folder"),
    ("acknowledgment_requirement_changed", "acknowledgment requirement changed"),
    ("access_roles_changed", "access permissions updated"),
)


def _roles(value: Iterable[str] | None) -> list[str]:
    return sorted(value or [])


def _flags(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    return {
        "title_changed": old.get("title") != new.get("title"),
        "description_changed": (old.get("description") or "") != (new.get("description") or ""),
        "content_changed": old.get("content") != new.get("content"),
        "folder_changed": old.get("folder_path") != new.get("folder_path"),
        "acknowledgment_requirement_changed": (
            bool(old.get("requires_acknowledgment")) != bool(new.get("requires_acknowledgment"))
        ),
        "access_roles_changed": _roles(old.get("access_roles")) != _roles(new.get("access_roles")),
        "word_count_delta": (new.get("word_count") or 0) - (old.get("word_count") or 0),
        "reading_time_delta": (
            (new.get("estimated_reading_time") or 0) - (old.get("estimated_reading_time") or 0)
        ),
    }


def requires_reacknowledgment(
    old: dict[str, Any],
    new: dict[str, Any],
    changes: dict[str, Any],
    *,
    threshold: float = DEFAULT_CONFIG.reacknowledgment_threshold,
) -> bool:
    if changes["acknowledgment_requirement_changed"] and new.get("requires_acknowledgment"):
        return True

    if changes["content_changed"]:
        old_len = len(old.get("content") or "")
        new_len = len(new.get("content") or "")
        if abs(new_len - old_len) / max(1, old_len) > threshold:
            return True

    if changes["access_roles_changed"]:
        old_roles = set(old.get("access_roles") or [])
        new_roles = set(new.get("access_roles") or [])
        if not old_roles and new_roles:
            return True
        if new_roles and new_roles < old_roles:
            return True

    return False


def change_summary(changes: dict[str, Any]) -> str:
    phrases = [phrase for key, phrase in _SUMMARY_PHRASES if changes.get(key)]
    if not phrases:
        return "Minor updates"
    if len(phrases) == 1:
        return phrases[0][0].upper() + phrases[0][1:]
    return ", ".join(phrases[:-1]) + " and " + phrases[-1]


def detect_changes(
    old: dict[str, Any] | None,
    new: dict[str, Any],
    *,
    threshold: float = DEFAULT_CONFIG.reacknowledgment_threshold,
) -> dict[str, Any]:
    """Compare the latest stored version with incoming document data.

    ``new`` must already carry ``word_count`` and ``estimated_reading_time``.
    """
    if old is None:
        return {
            "title_changed": True,
            "description_changed": bool(new.get("description")),
            "content_changed": True,
            "folder_changed": False,
            "acknowledgment_requirement_changed": bool(new.get("requires_acknowledgment")),
            "access_roles_changed": bool(new.get("access_roles")),
            "word_count_delta": new.get("word_count") or 0,
            "reading_time_delta": new.get("estimated_reading_time") or 0,
            "change_summary": "Initial version",
            "requires_reacknowledgment": False,
        }

    changes = _flags(old, new)
    changes["change_summary"] = change_summary(changes)
    changes["requires_reacknowledgment"] = requires_reacknowledgment(old, new, changes, threshold=threshold)
    return changes


def line_diff(old: str, new: str) -> dict[str, list[str]]:
    """Positional line diff: line N of ``old`` against line N of ``new``."""
    old_lines = (old or "").split("\n")
    new_lines = (new or "").split("\n")
    additions: list[str] = []
    deletions: list[str] = []
    modifications: list[str] = []

    for index in range(max(len(old_lines), len(new_lines))):
        number = index + 1
        before = old_lines[index] if index < len(old_lines) else None
        after = new_lines[index] if index < len(new_lines) else None
        if before is None:
            additions.append(f"+{number}: {after}")
        elif after is None:
            deletions.append(f"-{number}: {before}")
        elif before != after:
            modifications.append(f"~{number}: {before} → {after}")

    return {"additions": additions, "deletions": deletions, "modifications": modifications}


def compare_versions(from_version: dict[str, Any], to_version: dict[str, Any]) -> dict[str, Any]:
    changes = _flags(from_version, to_version)
    result = {
        "from_version": from_version.get("version_number"),
        "to_version": to_version.get("version_number"),
        "changes": changes,
        "content_diff": None,
    }
    if changes["content_changed"]:
        result["content_diff"] = line_diff(from_version.get("content"), to_version.get("content"))
    return result


def version_statistics(versions: list[dict[str, Any]]) -> dict[str, Any]:
    """Totals and versions-per-day across a document's history."""
    dates: list[datetime] = [as_utc(v["created_at"]) for v in versions if v.get("created_at")]
    first = min(dates) if dates else None
    last = max(dates) if dates else None
    total = len(versions)

    frequency = 0.0
    if first and last and total > 1:
        days = max(1, math.ceil((last - first).total_seconds() / 86400))
        frequency = total / days

    return {
        "total_versions": total,
        "first_version_date": iso(first),
        "last_version_date": iso(last),
        "total_contributors": len({v.get("created_by") for v in versions if v.get("created_by")}),
        "version_frequency": frequency,
    }

"""
scorgs.services.common — Shared service-layer helpers
======================================================

Every org-scoped mutation follows the same pattern:
  1. Open a session
  2. Read "before" snapshot
  3. Apply change
  4. Write audit_log with before/after JSON
  5. Commit

The helpers here provide the snapshot + audit steps, timezone
normalisation for values read back from the database, and a couple of
lookups that nearly every service needs.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from scorgs.database.models import AuditLog, Organization
from scorgs.errors import NotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------
def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = iso(val)
        result[col.name] = val
    return result


def log_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    organization_id: str | None = None,
    ip_address: str | None = None,
    reason: str | None = None,
) -> None:
    """Insert a row into audit_log within the current transaction."""
    session.add(AuditLog(
        actor_id=actor_id,
        organization_id=organization_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        ip_address=ip_address,
        reason=reason,
    ))


def apply_updates(
    obj: Any,
    updates: dict[str, Any],
    *,
    frozen_keys: tuple[str, ...] = ("id",),
) -> list[str]:
    """Set each allowed attribute from *updates*; return the keys changed."""
    changed = []
    for key, value in updates.items():
        if key in frozen_keys or not hasattr(obj, key):
            continue
        if getattr(obj, key) != value:
            setattr(obj, key, value)
            changed.append(key)
    return changed


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_organization(session: Session, organization_id: str) -> Organization:
    """Return an active organization by primary key or raise 404."""
    org = session.get(Organization, organization_id)
    if org is None or not org.is_active:
        raise NotFoundError("Organization not found")
    return org


def find_organization_by_rsi_id(session: Session, rsi_org_id: str) -> Organization | None:
    return session.scalar(
        select(Organization).where(
            Organization.rsi_org_id == rsi_org_id.upper(),
            Organization.is_active.is_(True),
        )
    )


def paginate(page: int, limit: int) -> tuple[int, int]:
    """Clamp page/limit and return ``(offset, limit)``."""
    page = max(1, page)
    limit = max(1, min(limit, 100))
    return (page - 1) * limit, limit

"""
scorgs.services.hr_document_service — HR documents, versions & acknowledgments
===============================================================================

Documents are markdown stored inline.  Every create/update writes a full
snapshot to ``hr_document_versions``; the document row always mirrors the
newest version.

Access
------
``access_roles`` lists role names allowed to read a document.  An empty
list means every active member.  Holders of ``manage_hr_documents`` (and
the owner) can always read.

Acknowledgments
---------------
A member acknowledges the current version.  When an update is significant
enough (see :mod:`scorgs.services.document_versions`) every valid
acknowledgment is flagged ``requires_reacknowledgment`` and the affected
members are notified.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.config import DEFAULT_CONFIG
from scorgs.constants import Permission
from scorgs.database.models import (
    AuditActionType,
    HRDocument,
    HRDocumentAcknowledgment,
    HRDocumentVersion,
    Organization,
    OrganizationMember,
    OrganizationRole,
    User,
    utcnow,
)
from scorgs.database.models import NotificationEntityType as NT
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services import document_versions
from scorgs.services.common import get_organization, iso, log_action, row_to_dict
from scorgs.services.markdown import estimated_reading_time, validate_markdown, word_count
from scorgs.services.notification_service import notify
from scorgs.services.role_service import active_member, has_permission, member_role, require_permission

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title",
    "description",
    "content",
    "folder_path",
    "requires_acknowledgment",
    "access_roles",
)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def document_to_dict(doc: HRDocument, ack: HRDocumentAcknowledgment | None = None) -> dict:
    data = {
        "id": doc.id,
        "organization_id": doc.organization_id,
        "title": doc.title,
        "description": doc.description,
        "content": doc.content,
        "word_count": doc.word_count,
        "estimated_reading_time": doc.estimated_reading_time,
        "folder_path": doc.folder_path,
        "version": doc.version,
        "requires_acknowledgment": doc.requires_acknowledgment,
        "access_roles": list(doc.access_roles or []),
        "uploaded_by": doc.uploaded_by,
        "created_at": iso(doc.created_at),
        "updated_at": iso(doc.updated_at),
    }
    if doc.requires_acknowledgment:
        data["acknowledged"] = ack is not None and not ack.requires_reacknowledgment
        data["needs_reacknowledgment"] = ack is not None and ack.requires_reacknowledgment
    return data


def version_to_dict(version: HRDocumentVersion) -> dict:
    return {
        "id": version.id,
        "document_id": version.document_id,
        "version_number": version.version_number,
        "title": version.title,
        "description": version.description,
        "content": version.content,
        "word_count": version.word_count,
        "estimated_reading_time": version.estimated_reading_time,
        "folder_path": version.folder_path,
        "requires_acknowledgment": version.requires_acknowledgment,
        "access_roles": list(version.access_roles or []),
        "change_summary": version.change_summary,
        "requires_reacknowledgment": version.requires_reacknowledgment,
        "created_by": version.created_by,
        "created_at": version.created_at,
    }


def _version_json(version: HRDocumentVersion) -> dict:
    data = version_to_dict(version)
    data["created_at"] = iso(version.created_at)
    return data


def normalize_folder(path: str | None) -> str:
    path = (path or "/").strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def _prepare_content(content: str) -> dict[str, Any]:
    report = validate_markdown(content)
    if not report.is_valid:
        raise InvalidInputError(report.errors[0], errors=report.errors, warnings=report.warnings)
    return {
        "word_count": word_count(content),
        "estimated_reading_time": estimated_reading_time(content),
    }


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------
def can_access(session: Session, org: Organization, doc: HRDocument, user_id: str) -> bool:
    if has_permission(session, org, user_id, Permission.MANAGE_HR_DOCUMENTS):
        return True
    role = member_role(session, org.id, user_id)
    if role is None:
        return False
    roles = doc.access_roles or []
    return not roles or role.name in roles


def _readable_document(session: Session, document_id: str, user_id: str) -> tuple[HRDocument, Organization]:
    doc = session.get(HRDocument, document_id)
    if doc is None:
        raise NotFoundError("Document not found")
    org = get_organization(session, doc.organization_id)
    if not can_access(session, org, doc, user_id):
        raise PermissionDeniedError("You do not have access to this document")
    return doc, org


def _require_editor(session: Session, org: Organization, doc: HRDocument, user_id: str) -> None:
    if has_permission(session, org, user_id, Permission.MANAGE_HR_DOCUMENTS):
        return
    if doc.uploaded_by == user_id and has_permission(session, org, user_id, Permission.UPLOAD_HR_DOCUMENTS):
        return
    raise PermissionDeniedError("Insufficient permissions")


def _members_with_access(session: Session, org: Organization, doc: HRDocument) -> list[str]:
    rows = session.execute(
        select(OrganizationMember.user_id, OrganizationRole.name)
        .join(OrganizationRole, OrganizationRole.id == OrganizationMember.role_id)
        .where(
            OrganizationMember.organization_id == org.id,
            OrganizationMember.is_active.is_(True),
        )
    ).all()
    roles = doc.access_roles or []
    return [user_id for user_id, role_name in rows if not roles or role_name in roles]


def _latest_version(session: Session, document_id: str) -> HRDocumentVersion | None:
    return session.scalar(
        select(HRDocumentVersion)
        .where(HRDocumentVersion.document_id == document_id)
        .order_by(HRDocumentVersion.version_number.desc())
        .limit(1)
    )


def _notify_ack_required(session: Session, org: Organization, doc: HRDocument, actor_id: str,
                         user_ids: list[str]) -> None:
    notify(
        session,
        entity_type=NT.HR_DOCUMENT_REQUIRES_ACKNOWLEDGMENT,
        entity_id=doc.id,
        actor_id=actor_id,
        notifier_ids=user_ids,
        custom_data={
            "document_title": doc.title,
            "document_id": doc.id,
            "rsi_org_id": org.rsi_org_id,
            "version": doc.version,
        },
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
def create_document(
    engine: Engine,
    organization_id: str,
    actor_id: str,
    *,
    title: str,
    content: str,
    description: str | None = None,
    folder_path: str = "/",
    requires_acknowledgment: bool = False,
    access_roles: list[str] | None = None,
) -> dict:
    title = (title or "").strip()
    if not title:
        raise InvalidInputError("Title is required")
    metrics = _prepare_content(content)

    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(
            session, org, actor_id,
            Permission.UPLOAD_HR_DOCUMENTS, Permission.MANAGE_HR_DOCUMENTS,
        )
        doc = HRDocument(
            organization_id=org.id,
            title=title,
            description=description,
            content=content,
            folder_path=normalize_folder(folder_path),
            version=1,
            requires_acknowledgment=requires_acknowledgment,
            access_roles=sorted(set(access_roles or [])),
            uploaded_by=actor_id,
            **metrics,
        )
        session.add(doc)
        session.flush()

        changes = document_versions.detect_changes(None, row_to_dict(doc))
        session.add(HRDocumentVersion(
            document_id=doc.id,
            version_number=1,
            title=doc.title,
            description=doc.description,
            content=doc.content,
            word_count=doc.word_count,
            estimated_reading_time=doc.estimated_reading_time,
            folder_path=doc.folder_path,
            requires_acknowledgment=doc.requires_acknowledgment,
            access_roles=list(doc.access_roles),
            change_summary=changes["change_summary"],
            requires_reacknowledgment=False,
            created_by=actor_id,
        ))
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_documents",
            target_id=doc.id,
            before=None,
            after=row_to_dict(doc),
            organization_id=org.id,
        )
        if doc.requires_acknowledgment:
            _notify_ack_required(session, org, doc, actor_id, _members_with_access(session, org, doc))
        session.commit()
        logger.info("Document %r created in %s by %s", doc.title, org.rsi_org_id, actor_id)
        return document_to_dict(doc)


def update_document(
    engine: Engine,
    document_id: str,
    actor_id: str,
    updates: dict[str, Any],
    *,
    reacknowledgment_threshold: float = DEFAULT_CONFIG.reacknowledgment_threshold,
) -> dict:
    updates = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
    if "title" in updates:
        updates["title"] = (updates["title"] or "").strip()
        if not updates["title"]:
            raise InvalidInputError("Title is required")
    if "folder_path" in updates:
        updates["folder_path"] = normalize_folder(updates["folder_path"])
    if "access_roles" in updates:
        updates["access_roles"] = sorted(set(updates["access_roles"] or []))
    if "content" in updates:
        updates.update(_prepare_content(updates["content"]))

    with Session(engine, expire_on_commit=False) as session:
        doc = session.get(HRDocument, document_id)
        if doc is None:
            raise NotFoundError("Document not found")
        org = get_organization(session, doc.organization_id)
        _require_editor(session, org, doc, actor_id)

        before = row_to_dict(doc)
        incoming = {**before, **updates}
        latest = _latest_version(session, doc.id)
        changes = document_versions.detect_changes(
            version_to_dict(latest) if latest else None, incoming,
            threshold=reacknowledgment_threshold,
        )
        for key, value in updates.items():
            setattr(doc, key, value)
        doc.version = (doc.version or 1) + 1
        doc.updated_at = utcnow()

        session.add(HRDocumentVersion(
            document_id=doc.id,
            version_number=doc.version,
            title=doc.title,
            description=doc.description,
            content=doc.content,
            word_count=doc.word_count,
            estimated_reading_time=doc.estimated_reading_time,
            folder_path=doc.folder_path,
            requires_acknowledgment=doc.requires_acknowledgment,
            access_roles=list(doc.access_roles or []),
            change_summary=changes["change_summary"],
            requires_reacknowledgment=changes["requires_reacknowledgment"],
            created_by=actor_id,
        ))
        session.flush()

        invalidated: list[str] = []
        if changes["requires_reacknowledgment"]:
            now = utcnow()
            acks = session.scalars(
                select(HRDocumentAcknowledgment).where(
                    HRDocumentAcknowledgment.document_id == doc.id,
                    HRDocumentAcknowledgment.requires_reacknowledgment.is_(False),
                )
            ).all()
            for ack in acks:
                ack.requires_reacknowledgment = True
                ack.invalidated_at = now
                ack.invalidated_by = actor_id
                invalidated.append(ack.user_id)

        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.UPDATE,
            target_table="hr_documents",
            target_id=doc.id,
            before=before,
            after=row_to_dict(doc),
            organization_id=org.id,
            reason=changes["change_summary"],
        )
        if invalidated and doc.requires_acknowledgment:
            _notify_ack_required(session, org, doc, actor_id, invalidated)
        session.commit()
        logger.info(
            "Document %s updated to v%d (%s); %d acknowledgment(s) invalidated",
            doc.id, doc.version, changes["change_summary"], len(invalidated),
        )
        result = document_to_dict(doc)
        result["change_summary"] = changes["change_summary"]
        result["requires_reacknowledgment"] = changes["requires_reacknowledgment"]
        result["invalidated_acknowledgments"] = len(invalidated)
        return result


def delete_document(engine: Engine, document_id: str, actor_id: str) -> None:
    with Session(engine) as session:
        doc = session.get(HRDocument, document_id)
        if doc is None:
            raise NotFoundError("Document not found")
        org = get_organization(session, doc.organization_id)
        _require_editor(session, org, doc, actor_id)
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.DELETE,
            target_table="hr_documents",
            target_id=doc.id,
            before=row_to_dict(doc),
            after=None,
            organization_id=org.id,
        )
        session.delete(doc)
        session.commit()
        logger.info("Document %s deleted by %s", document_id, actor_id)


def _user_ack(session: Session, document_id: str, user_id: str) -> HRDocumentAcknowledgment | None:
    return session.scalar(
        select(HRDocumentAcknowledgment).where(
            HRDocumentAcknowledgment.document_id == document_id,
            HRDocumentAcknowledgment.user_id == user_id,
        )
    )


def get_document(engine: Engine, document_id: str, user_id: str) -> dict:
    with Session(engine) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        return document_to_dict(doc, _user_ack(session, doc.id, user_id))


def list_documents(
    engine: Engine,
    organization_id: str,
    user_id: str,
    *,
    folder: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """Documents the user may read, optionally within one folder or matching *search*."""
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        if active_member(session, org.id, user_id) is None and org.owner_id != user_id:
            raise PermissionDeniedError("Only members can view documents")
        stmt = select(HRDocument).where(HRDocument.organization_id == org.id)
        if folder:
            stmt = stmt.where(HRDocument.folder_path == normalize_folder(folder))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                HRDocument.title.ilike(pattern)
                | HRDocument.description.ilike(pattern)
                | HRDocument.content.ilike(pattern)
            )
        docs = session.scalars(stmt.order_by(HRDocument.folder_path, HRDocument.title)).all()
        acks = {
            a.document_id: a
            for a in session.scalars(
                select(HRDocumentAcknowledgment).where(HRDocumentAcknowledgment.user_id == user_id)
            )
        }
        return [
            document_to_dict(d, acks.get(d.id))
            for d in docs
            if can_access(session, org, d, user_id)
        ]


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------
def _versions(session: Session, document_id: str) -> list[HRDocumentVersion]:
    return list(session.scalars(
        select(HRDocumentVersion)
        .where(HRDocumentVersion.document_id == document_id)
        .order_by(HRDocumentVersion.version_number.desc())
    ))


def list_versions(engine: Engine, document_id: str, user_id: str) -> list[dict]:
    with Session(engine) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        return [_version_json(v) for v in _versions(session, doc.id)]


def _version(session: Session, document_id: str, number: int) -> HRDocumentVersion:
    version = session.scalar(
        select(HRDocumentVersion).where(
            HRDocumentVersion.document_id == document_id,
            HRDocumentVersion.version_number == number,
        )
    )
    if version is None:
        raise NotFoundError(f"Version {number} not found")
    return version


def get_version(engine: Engine, document_id: str, version_number: int, user_id: str) -> dict:
    with Session(engine) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        return _version_json(_version(session, doc.id, version_number))


def compare_document_versions(
    engine: Engine,
    document_id: str,
    from_version: int,
    to_version: int,
    user_id: str,
) -> dict:
    with Session(engine) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        older = version_to_dict(_version(session, doc.id, from_version))
        newer = version_to_dict(_version(session, doc.id, to_version))
        return document_versions.compare_versions(older, newer)


def document_version_statistics(engine: Engine, document_id: str, user_id: str) -> dict:
    with Session(engine) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        return document_versions.version_statistics(
            [version_to_dict(v) for v in _versions(session, doc.id)]
        )


# ---------------------------------------------------------------------------
# Acknowledgments
# ---------------------------------------------------------------------------
def acknowledge_document(
    engine: Engine,
    document_id: str,
    user_id: str,
    *,
    ip_address: str | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        doc, _org = _readable_document(session, document_id, user_id)
        if not doc.requires_acknowledgment:
            raise InvalidInputError("This document does not require acknowledgment")

        ack = _user_ack(session, doc.id, user_id)
        if ack is not None and not ack.requires_reacknowledgment:
            raise ConflictError("You have already acknowledged this document")

        if ack is None:
            ack = HRDocumentAcknowledgment(
                document_id=doc.id,
                user_id=user_id,
                acknowledged_version=doc.version,
                ip_address=ip_address,
            )
            session.add(ack)
        else:
            ack.requires_reacknowledgment = False
            ack.acknowledged_version = doc.version
            ack.acknowledged_at = utcnow()
            ack.invalidated_at = None
            ack.invalidated_by = None
            ack.ip_address = ip_address
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_document_acknowledgments",
            target_id=ack.id,
            before=None,
            after={"document_id": doc.id, "title": doc.title, "acknowledged_version": ack.acknowledged_version},
            organization_id=doc.organization_id,
        )
        session.commit()
        logger.info("User %s acknowledged document %s v%d", user_id, doc.id, doc.version)
        return {
            "document_id": doc.id,
            "user_id": user_id,
            "acknowledged_version": ack.acknowledged_version,
            "acknowledged_at": iso(ack.acknowledged_at),
        }


def acknowledgment_status(engine: Engine, document_id: str, actor_id: str) -> dict:
    """Who must acknowledge, who has, and who still owes an acknowledgment."""
    with Session(engine) as session:
        doc = session.get(HRDocument, document_id)
        if doc is None:
            raise NotFoundError("Document not found")
        org = get_organization(session, doc.organization_id)
        require_permission(session, org, actor_id, Permission.MANAGE_HR_DOCUMENTS)

        required = _members_with_access(session, org, doc) if doc.requires_acknowledgment else []
        acks = {
            a.user_id: a
            for a in session.scalars(
                select(HRDocumentAcknowledgment).where(HRDocumentAcknowledgment.document_id == doc.id)
            )
        }
        names = dict(session.execute(select(User.id, User.username).where(User.id.in_(required))).all())

        acknowledged, pending, needs_reack = [], [], []
        for user_id in required:
            ack = acks.get(user_id)
            entry = {"user_id": user_id, "username": names.get(user_id)}
            if ack is None:
                pending.append(entry)
            elif ack.requires_reacknowledgment:
                needs_reack.append({**entry, "acknowledged_version": ack.acknowledged_version})
                pending.append(entry)
            else:
                acknowledged.append({
                    **entry,
                    "acknowledged_version": ack.acknowledged_version,
                    "acknowledged_at": iso(ack.acknowledged_at),
                })

        return {
            "document_id": doc.id,
            "version": doc.version,
            "requires_acknowledgment": doc.requires_acknowledgment,
            "required_users": len(required),
            "acknowledged": acknowledged,
            "pending": pending,
            "needs_reacknowledgment": needs_reack,
            "acknowledgment_gap": len(pending),
        }


def pending_acknowledgments(engine: Engine, organization_id: str, user_id: str) -> list[dict]:
    with Session(engine) as session:
        org = get_organization(session, organization_id)
        docs = session.scalars(
            select(HRDocument).where(
                HRDocument.organization_id == org.id,
                HRDocument.requires_acknowledgment.is_(True),
            ).order_by(HRDocument.updated_at.desc())
        ).all()
        pending = []
        for doc in docs:
            if not can_access(session, org, doc, user_id):
                continue
            ack = _user_ack(session, doc.id, user_id)
            if ack is None or ack.requires_reacknowledgment:
                pending.append({
                    "document_id": doc.id,
                    "title": doc.title,
                    "folder_path": doc.folder_path,
                    "version": doc.version,
                    "needs_reacknowledgment": ack is not None,
                })
        return pending

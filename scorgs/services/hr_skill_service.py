"""
scorgs.services.hr_skill_service — Skills & certifications
===========================================================

The skill catalogue (``hr_skills``) is global.  Members claim skills per
organization with a proficiency level; somebody holding ``verify_skills``
(never the member themself) can verify the claim.  Certifications are
per-organization records with an optional expiry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from scorgs.config import DEFAULT_CONFIG
from scorgs.constants import PROFICIENCY_LEVELS, SKILL_CATEGORIES, Permission
from scorgs.database.models import (
    AuditActionType,
    HRCertification,
    HRSkill,
    HRUserSkill,
    User,
    utcnow,
)
from scorgs.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from scorgs.services.common import as_utc, get_organization, iso, log_action, row_to_dict
from scorgs.services.role_service import active_member, has_permission, require_permission

logger = logging.getLogger(__name__)


def skill_to_dict(skill: HRSkill) -> dict:
    return {
        "id": skill.id,
        "name": skill.name,
        "category": skill.category,
        "description": skill.description,
        "verification_required": skill.verification_required,
    }


def user_skill_to_dict(row: HRUserSkill, skill: HRSkill | None = None) -> dict:
    data = {
        "id": row.id,
        "user_id": row.user_id,
        "skill_id": row.skill_id,
        "organization_id": row.organization_id,
        "proficiency_level": row.proficiency_level,
        "verified": row.verified,
        "verified_by": row.verified_by,
        "verified_at": iso(row.verified_at),
        "notes": row.notes,
        "created_at": iso(row.created_at),
    }
    if skill is not None:
        data["skill_name"] = skill.name
        data["category"] = skill.category
    return data


def certification_to_dict(cert: HRCertification) -> dict:
    return {
        "id": cert.id,
        "user_id": cert.user_id,
        "organization_id": cert.organization_id,
        "name": cert.name,
        "description": cert.description,
        "issued_date": iso(cert.issued_date),
        "expiration_date": iso(cert.expiration_date),
        "issued_by": cert.issued_by,
        "certificate_url": cert.certificate_url,
        "created_at": iso(cert.created_at),
    }


def _check_proficiency(level: str) -> None:
    if level not in PROFICIENCY_LEVELS:
        raise InvalidInputError(
            f"Proficiency must be one of: {', '.join(PROFICIENCY_LEVELS)}"
        )


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
def create_skill(
    engine: Engine,
    *,
    name: str,
    category: str,
    description: str | None = None,
    verification_required: bool = False,
) -> dict:
    name = name.strip()
    if not name:
        raise InvalidInputError("Skill name is required")
    if category not in SKILL_CATEGORIES:
        raise InvalidInputError(f"Category must be one of: {', '.join(SKILL_CATEGORIES)}")
    with Session(engine, expire_on_commit=False) as session:
        if session.scalar(select(HRSkill.id).where(HRSkill.name.ilike(name))) is not None:
            raise ConflictError(f"Skill '{name}' already exists")
        skill = HRSkill(
            name=name,
            category=category,
            description=description,
            verification_required=verification_required,
        )
        session.add(skill)
        session.commit()
        logger.info("Skill %r (%s) added to catalogue", name, category)
        return skill_to_dict(skill)


def list_skills(engine: Engine, *, category: str | None = None) -> list[dict]:
    with Session(engine) as session:
        stmt = select(HRSkill)
        if category:
            stmt = stmt.where(HRSkill.category == category)
        return [skill_to_dict(s) for s in session.scalars(stmt.order_by(HRSkill.category, HRSkill.name))]


# ---------------------------------------------------------------------------
# Member skills
# ---------------------------------------------------------------------------
def add_user_skill(
    engine: Engine,
    organization_id: str,
    user_id: str,
    *,
    skill_id: str,
    proficiency_level: str,
    notes: str | None = None,
) -> dict:
    _check_proficiency(proficiency_level)
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        if active_member(session, org.id, user_id) is None:
            raise PermissionDeniedError("Only members can add skills in this organization")
        skill = session.get(HRSkill, skill_id)
        if skill is None:
            raise NotFoundError("Skill not found")
        existing = session.scalar(
            select(HRUserSkill.id).where(
                HRUserSkill.user_id == user_id,
                HRUserSkill.skill_id == skill.id,
                HRUserSkill.organization_id == org.id,
            )
        )
        if existing is not None:
            raise ConflictError("You have already added this skill")

        row = HRUserSkill(
            user_id=user_id,
            skill_id=skill.id,
            organization_id=org.id,
            proficiency_level=proficiency_level,
            notes=notes,
        )
        session.add(row)
        session.commit()
        return user_skill_to_dict(row, skill)


def update_user_skill(
    engine: Engine,
    user_skill_id: str,
    user_id: str,
    *,
    proficiency_level: str | None = None,
    notes: str | None = None,
) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        row = session.get(HRUserSkill, user_skill_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError("Skill record not found")
        if proficiency_level is not None and proficiency_level != row.proficiency_level:
            _check_proficiency(proficiency_level)
            row.proficiency_level = proficiency_level
            # A changed claim needs verifying again.
            row.verified = False
            row.verified_by = None
            row.verified_at = None
        if notes is not None:
            row.notes = notes
        session.commit()
        return user_skill_to_dict(row, session.get(HRSkill, row.skill_id))


def verify_user_skill(engine: Engine, user_skill_id: str, verifier_id: str) -> dict:
    with Session(engine, expire_on_commit=False) as session:
        row = session.get(HRUserSkill, user_skill_id)
        if row is None:
            raise NotFoundError("Skill record not found")
        org = get_organization(session, row.organization_id)
        require_permission(session, org, verifier_id, Permission.VERIFY_SKILLS, Permission.MANAGE_HR_SKILLS)
        if row.user_id == verifier_id:
            raise PermissionDeniedError("You cannot verify your own skill")

        before = row_to_dict(row)
        row.verified = True
        row.verified_by = verifier_id
        row.verified_at = utcnow()
        session.flush()
        log_action(
            session,
            actor_id=verifier_id,
            action_type=AuditActionType.VERIFY,
            target_table="hr_user_skills",
            target_id=row.id,
            before=before,
            after=row_to_dict(row),
            organization_id=org.id,
        )
        session.commit()
        logger.info("Skill record %s verified by %s", row.id, verifier_id)
        return user_skill_to_dict(row, session.get(HRSkill, row.skill_id))


def list_user_skills(engine: Engine, organization_id: str, *, user_id: str | None = None) -> list[dict]:
    with Session(engine) as session:
        stmt = (
            select(HRUserSkill, HRSkill, User.username)
            .join(HRSkill, HRSkill.id == HRUserSkill.skill_id)
            .join(User, User.id == HRUserSkill.user_id)
            .where(HRUserSkill.organization_id == organization_id)
        )
        if user_id:
            stmt = stmt.where(HRUserSkill.user_id == user_id)
        rows = session.execute(stmt.order_by(HRSkill.name)).all()
        return [{**user_skill_to_dict(r, s), "username": name} for r, s, name in rows]


def skill_matrix(engine: Engine, organization_id: str) -> list[dict]:
    """Per skill: holders, verified holders, and counts by proficiency."""
    with Session(engine) as session:
        rows = session.execute(
            select(HRUserSkill, HRSkill)
            .join(HRSkill, HRSkill.id == HRUserSkill.skill_id)
            .where(HRUserSkill.organization_id == organization_id)
        ).all()

    matrix: dict[str, dict] = {}
    for row, skill in rows:
        entry = matrix.setdefault(skill.id, {
            "skill_id": skill.id,
            "skill_name": skill.name,
            "category": skill.category,
            "total": 0,
            "verified": 0,
            "proficiency": {level: 0 for level in PROFICIENCY_LEVELS},
        })
        entry["total"] += 1
        if row.verified:
            entry["verified"] += 1
        if row.proficiency_level in entry["proficiency"]:
            entry["proficiency"][row.proficiency_level] += 1
    return sorted(matrix.values(), key=lambda e: (e["category"], e["skill_name"]))


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------
def add_certification(
    engine: Engine,
    organization_id: str,
    issuer_id: str,
    *,
    user_id: str,
    name: str,
    issued_date: datetime,
    expiration_date: datetime | None = None,
    description: str | None = None,
    certificate_url: str | None = None,
) -> dict:
    if expiration_date is not None and as_utc(expiration_date) <= as_utc(issued_date):
        raise InvalidInputError("Expiration date must be after the issue date")
    with Session(engine, expire_on_commit=False) as session:
        org = get_organization(session, organization_id)
        require_permission(session, org, issuer_id, Permission.MANAGE_HR_SKILLS, Permission.VERIFY_SKILLS)
        if active_member(session, org.id, user_id) is None:
            raise InvalidInputError("User is not a member of this organization")
        cert = HRCertification(
            user_id=user_id,
            organization_id=org.id,
            name=name,
            description=description,
            issued_date=issued_date,
            expiration_date=expiration_date,
            issued_by=issuer_id,
            certificate_url=certificate_url,
        )
        session.add(cert)
        session.flush()
        log_action(
            session,
            actor_id=issuer_id,
            action_type=AuditActionType.CREATE,
            target_table="hr_certifications",
            target_id=cert.id,
            before=None,
            after=row_to_dict(cert),
            organization_id=org.id,
        )
        session.commit()
        return certification_to_dict(cert)


def list_certifications(engine: Engine, organization_id: str, *, user_id: str | None = None) -> list[dict]:
    with Session(engine) as session:
        stmt = select(HRCertification).where(HRCertification.organization_id == organization_id)
        if user_id:
            stmt = stmt.where(HRCertification.user_id == user_id)
        certs = session.scalars(stmt.order_by(HRCertification.issued_date.desc())).all()
        return [certification_to_dict(c) for c in certs]


def expiring_certifications(
    engine: Engine,
    organization_id: str,
    *,
    within_days: int = DEFAULT_CONFIG.certification_expiry_warning_days,
    now: datetime | None = None,
) -> list[dict]:
    """Certifications expiring between now and ``now + within_days``."""
    now = now or utcnow()
    horizon = now + timedelta(days=within_days)
    with Session(engine) as session:
        certs = session.scalars(
            select(HRCertification).where(
                HRCertification.organization_id == organization_id,
                HRCertification.expiration_date.is_not(None),
            )
        ).all()
    expiring = [c for c in certs if now <= as_utc(c.expiration_date) <= horizon]
    expiring.sort(key=lambda c: as_utc(c.expiration_date))
    return [certification_to_dict(c) for c in expiring]


def delete_certification(engine: Engine, certification_id: str, actor_id: str) -> None:
    with Session(engine) as session:
        cert = session.get(HRCertification, certification_id)
        if cert is None:
            raise NotFoundError("Certification not found")
        org = get_organization(session, cert.organization_id)
        if not has_permission(session, org, actor_id, Permission.MANAGE_HR_SKILLS):
            raise PermissionDeniedError("Insufficient permissions")
        log_action(
            session,
            actor_id=actor_id,
            action_type=AuditActionType.DELETE,
            target_table="hr_certifications",
            target_id=cert.id,
            before=row_to_dict(cert),
            after=None,
            organization_id=org.id,
        )
        session.delete(cert)
        session.commit()

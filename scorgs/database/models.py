"""
scorgs.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- users                     — Platform accounts (Discord identity + RSI verification)
- organizations             — Player organizations keyed by Spectrum ID
- organization_upvotes      — Weekly upvotes per user per organization
- organization_roles        — Ranked permission bundles scoped to an org
- role_permissions          — Permission grants per role
- organization_members      — Membership + assigned role
- invite_codes              — Join codes with optional role, expiry, max uses
- events                    — Scheduled org / community events
- event_registrations       — Attendance intent per user per event
- event_reviews             — Post-event ratings
- event_reminders           — Reminder stages already sent per event
- comments                  — Threaded discussion on organization pages
- comment_votes             — One up/down vote per user per comment
- discord_servers           — Discord guild ↔ organization links
- discord_events            — Discord scheduled-event sync state per event
- notification_objects      — What happened (entity type + id)
- notification_changes      — Who did it (actor)
- notifications             — Who is told (one row per recipient)
- hr_applications           — Membership applications
- hr_application_status_history — Append-only status transitions
- hr_onboarding_templates   — Task checklists per role
- hr_onboarding_progress    — Per-user checklist progress
- hr_performance_reviews    — Period reviews with category ratings
- hr_performance_goals      — Goals attached to reviews
- hr_skills                 — Global skill catalogue
- hr_user_skills            — Skills claimed by members (optionally verified)
- hr_certifications         — Member certifications with expiry
- hr_documents              — Markdown documents with access roles
- hr_document_versions      — Snapshot per document version
- hr_document_acknowledgments — Who acknowledged which version
- audit_log                 — Append-only audit trail
- rate_limit_events         — Durable sliding-window mutation counter
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all SCORGS ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RegistrationStatus(enum.StrEnum):
    REGISTERED = "registered"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class SyncStatus(enum.StrEnum):
    """Discord scheduled-event sync state."""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ApplicationStatus(enum.StrEnum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    APPROVED = "approved"
    REJECTED = "rejected"


class OnboardingStatus(enum.StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class ReviewStatus(enum.StrEnum):
    """Performance review lifecycle."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"


class GoalStatus(enum.StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class VoteType(enum.StrEnum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class NotificationEntityType(enum.IntEnum):
    """Numeric entity-type codes stored on notification_objects."""
    ORGANIZATION_CREATED = 1
    ORGANIZATION_UPDATED = 2
    ORGANIZATION_DELETED = 3
    ORGANIZATION_JOINED = 4
    ORGANIZATION_LEFT = 5
    ORGANIZATION_INVITED = 6
    ORGANIZATION_ROLE_CHANGED = 7

    EVENT_CREATED = 10
    EVENT_UPDATED = 11
    EVENT_DELETED = 12
    EVENT_REGISTERED = 13
    EVENT_UNREGISTERED = 14
    EVENT_STARTING_SOON = 15
    EVENT_REMINDER = 16

    COMMENT_CREATED = 20
    COMMENT_UPDATED = 21
    COMMENT_DELETED = 22
    COMMENT_REPLIED = 23
    COMMENT_VOTED = 24

    USER_VERIFIED = 30
    USER_PROFILE_UPDATED = 31

    SYSTEM_ANNOUNCEMENT = 40
    SYSTEM_MAINTENANCE = 41
    SYSTEM_UPDATE = 42

    SECURITY_LOGIN = 50
    SECURITY_PASSWORD_CHANGED = 51
    SECURITY_ACCOUNT_LOCKED = 52

    HR_APPLICATION_SUBMITTED = 60
    HR_APPLICATION_STATUS_CHANGED = 61
    HR_DOCUMENT_REQUIRES_ACKNOWLEDGMENT = 62
    HR_ONBOARDING_ASSIGNED = 63


class AuditActionType(enum.StrEnum):
    """Categories of mutations recorded in audit_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VERIFY = "VERIFY"
    ASSIGN_ROLE = "ASSIGN_ROLE"
    REMOVE_MEMBER = "REMOVE_MEMBER"
    STATUS_CHANGE = "STATUS_CHANGE"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    discord_id: Mapped[str | None] = mapped_column(String(32), unique=True, default=None)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    rsi_handle: Mapped[str | None] = mapped_column(String(100), default=None)
    spectrum_id: Mapped[str | None] = mapped_column(String(100), default=None)
    is_rsi_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_users_rsi_handle", "rsi_handle"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} verified={self.is_rsi_verified}>"


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    rsi_org_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    headline: Mapped[str | None] = mapped_column(Text, default=None)
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    banner_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_registered: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_sentinel: Mapped[str | None] = mapped_column(String(32), default=None)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False
    )
    languages: Mapped[list] = mapped_column(JSONB, default=list)
    playstyle_tags: Mapped[list] = mapped_column(JSONB, default=list)
    focus_tags: Mapped[list] = mapped_column(JSONB, default=list)
    total_upvotes: Mapped[int] = mapped_column(Integer, default=0)
    total_members: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    discord_integration_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    roles: Mapped[list[OrganizationRole]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_organizations_upvotes", "total_upvotes"),
        Index("ix_organizations_owner", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} rsi={self.rsi_org_id!r} registered={self.is_registered}>"


class OrganizationUpvote(Base):
    __tablename__ = "organization_upvotes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_org_upvotes_org_user_time", "organization_id", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OrganizationUpvote org={self.organization_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Roles & membership
# ---------------------------------------------------------------------------
class OrganizationRole(Base):
    __tablename__ = "organization_roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False)
    is_editable: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    organization: Mapped[Organization] = relationship(back_populates="roles")
    permissions: Mapped[list[RolePermission]] = relationship(
        back_populates="role", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_org_role_name"),
        Index("ix_org_roles_org_rank", "organization_id", "rank"),
    )

    def __repr__(self) -> str:
        return f"<OrganizationRole name={self.name!r} rank={self.rank}>"


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organization_roles.id", ondelete="CASCADE"), nullable=False
    )
    permission: Mapped[str] = mapped_column(String(64), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, default=True)

    role: Mapped[OrganizationRole] = relationship(back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("role_id", "permission", name="uq_role_permission"),
    )

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} perm={self.permission!r}>"


class OrganizationMember(Base):
    __tablename__ = "organization_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organization_roles.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
        Index("ix_org_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<OrganizationMember org={self.organization_id} user={self.user_id}>"


class InviteCode(Base):
    __tablename__ = "invite_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organization_roles.id", ondelete="SET NULL"), default=None
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    max_uses: Mapped[int | None] = mapped_column(Integer, default=None)
    used_count: Mapped[int] = mapped_column(Integer, default=0)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_invite_codes_org", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<InviteCode code={self.code!r} used={self.used_count}/{self.max_uses}>"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), default=None
    )
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    location: Mapped[str | None] = mapped_column(String(200), default=None)
    languages: Mapped[list] = mapped_column(JSONB, default=list)
    playstyle_tags: Mapped[list] = mapped_column(JSONB, default=list)
    max_participants: Mapped[int | None] = mapped_column(Integer, default=None)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    registration_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_events_org_start", "organization_id", "start_time"),
        Index("ix_events_start", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r}>"


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationStatus.REGISTERED
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registration"),
    )

    def __repr__(self) -> str:
        return f"<EventRegistration event={self.event_id} user={self.user_id} status={self.status}>"


class EventReview(Base):
    __tablename__ = "event_reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review_text: Mapped[str | None] = mapped_column(Text, default=None)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_review"),
    )

    def __repr__(self) -> str:
        return f"<EventReview event={self.event_id} rating={self.rating}>"


class EventReminder(Base):
    """One row per reminder stage already sent for an event."""
    __tablename__ = "event_reminders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    reminder_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipients: Mapped[int] = mapped_column(Integer, default=0)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "reminder_type", name="uq_event_reminder_stage"),
    )

    def __repr__(self) -> str:
        return f"<EventReminder event={self.event_id} stage={self.reminder_type}>"


# ---------------------------------------------------------------------------
# Comments — public discussion on organization pages
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("comments.id", ondelete="CASCADE"), default=None
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, default=0)
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_comments_org_created", "organization_id", "created_at"),
        Index("ix_comments_parent", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} org={self.organization_id} parent={self.parent_id}>"


class CommentVote(Base):
    __tablename__ = "comment_votes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    comment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_vote"),
    )

    def __repr__(self) -> str:
        return f"<CommentVote comment={self.comment_id} user={self.user_id} {self.vote_type}>"


# ---------------------------------------------------------------------------
# Discord integration
# ---------------------------------------------------------------------------
class DiscordServer(Base):
    __tablename__ = "discord_servers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    discord_guild_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    guild_name: Mapped[str] = mapped_column(String(200), nullable=False)
    guild_icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_create_events: Mapped[bool] = mapped_column(Boolean, default=True)
    announcement_channel_id: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<DiscordServer guild={self.discord_guild_id} org={self.organization_id}>"


class DiscordEvent(Base):
    __tablename__ = "discord_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    discord_guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    discord_event_id: Mapped[str | None] = mapped_column(String(32), default=None)
    sync_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.PENDING
    )
    sync_error: Mapped[str | None] = mapped_column(Text, default=None)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_discord_events_status", "sync_status"),
    )

    def __repr__(self) -> str:
        return f"<DiscordEvent event={self.event_id} status={self.sync_status}>"


# ---------------------------------------------------------------------------
# Notifications — object / change / recipient triad
# ---------------------------------------------------------------------------
class NotificationObject(Base):
    __tablename__ = "notification_objects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    entity_type: Mapped[int] = mapped_column(Integer, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    custom_data: Mapped[dict | None] = mapped_column(JSONB, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notification_objects_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<NotificationObject type={self.entity_type} entity={self.entity_id}>"


class NotificationChange(Base):
    __tablename__ = "notification_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    notification_object_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notification_objects.id", ondelete="CASCADE"), nullable=False
    )
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    notification_object_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notification_objects.id", ondelete="CASCADE"), nullable=False
    )
    notifier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_notifier_read", "notifier_id", "is_read"),
        Index("ix_notifications_notifier_created", "notifier_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification notifier={self.notifier_id} read={self.is_read}>"


# ---------------------------------------------------------------------------
# HR — applications
# ---------------------------------------------------------------------------
class HRApplication(Base):
    __tablename__ = "hr_applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ApplicationStatus.PENDING
    )
    application_data: Mapped[dict] = mapped_column(JSONB, default=dict)
    reviewer_id: Mapped[str | None] = mapped_column(String(36), default=None)
    review_notes: Mapped[str | None] = mapped_column(Text, default=None)
    rejection_reason: Mapped[str | None] = mapped_column(Text, default=None)
    invite_code: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_hr_applications_org_status", "organization_id", "status"),
        Index("ix_hr_applications_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<HRApplication id={self.id} status={self.status}>"


class HRApplicationStatusHistory(Base):
    __tablename__ = "hr_application_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_applications.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(36), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_hr_app_history_app", "application_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# HR — onboarding
# ---------------------------------------------------------------------------
class HROnboardingTemplate(Base):
    __tablename__ = "hr_onboarding_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    role_name: Mapped[str] = mapped_column(String(100), nullable=False)
    tasks: Mapped[list] = mapped_column(JSONB, default=list)
    estimated_duration_days: Mapped[int] = mapped_column(Integer, default=14)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "role_name", name="uq_onboarding_template_role"),
    )

    def __repr__(self) -> str:
        return f"<HROnboardingTemplate role={self.role_name!r} tasks={len(self.tasks or [])}>"


class HROnboardingProgress(Base):
    __tablename__ = "hr_onboarding_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_onboarding_templates.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OnboardingStatus.NOT_STARTED
    )
    completed_tasks: Mapped[list] = mapped_column(JSONB, default=list)
    completion_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "template_id", name="uq_onboarding_user_template"),
        Index("ix_onboarding_org_status", "organization_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<HROnboardingProgress user={self.user_id} pct={self.completion_percentage}>"


# ---------------------------------------------------------------------------
# HR — performance
# ---------------------------------------------------------------------------
class HRPerformanceReview(Base):
    __tablename__ = "hr_performance_reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    reviewee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reviewer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    review_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    review_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ReviewStatus.DRAFT)
    ratings: Mapped[dict] = mapped_column(JSONB, default=dict)
    overall_rating: Mapped[float | None] = mapped_column(Float, default=None)
    strengths: Mapped[list] = mapped_column(JSONB, default=list)
    areas_for_improvement: Mapped[list] = mapped_column(JSONB, default=list)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    goals: Mapped[list[HRPerformanceGoal]] = relationship(
        back_populates="review", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_perf_reviews_org_reviewee", "organization_id", "reviewee_id"),
    )

    def __repr__(self) -> str:
        return f"<HRPerformanceReview reviewee={self.reviewee_id} status={self.status}>"


class HRPerformanceGoal(Base):
    __tablename__ = "hr_performance_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    review_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_performance_reviews.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    target_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=GoalStatus.NOT_STARTED)
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    review: Mapped[HRPerformanceReview] = relationship(back_populates="goals")

    def __repr__(self) -> str:
        return f"<HRPerformanceGoal title={self.title!r} progress={self.progress_percentage}>"


# ---------------------------------------------------------------------------
# HR — skills & certifications
# ---------------------------------------------------------------------------
class HRSkill(Base):
    __tablename__ = "hr_skills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    verification_required: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<HRSkill name={self.name!r} category={self.category}>"


class HRUserSkill(Base):
    __tablename__ = "hr_user_skills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    skill_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_skills.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    proficiency_level: Mapped[str] = mapped_column(String(20), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_by: Mapped[str | None] = mapped_column(String(36), default=None)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "skill_id", "organization_id", name="uq_user_skill_org"),
    )

    def __repr__(self) -> str:
        return f"<HRUserSkill user={self.user_id} skill={self.skill_id} lvl={self.proficiency_level}>"


class HRCertification(Base):
    __tablename__ = "hr_certifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    issued_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    issued_by: Mapped[str] = mapped_column(String(36), nullable=False)
    certificate_url: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_certifications_org_expiry", "organization_id", "expiration_date"),
    )

    def __repr__(self) -> str:
        return f"<HRCertification name={self.name!r} user={self.user_id}>"


# ---------------------------------------------------------------------------
# HR — documents
# ---------------------------------------------------------------------------
class HRDocument(Base):
    __tablename__ = "hr_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    estimated_reading_time: Mapped[int] = mapped_column(Integer, default=0)
    folder_path: Mapped[str] = mapped_column(String(500), default="/")
    version: Mapped[int] = mapped_column(Integer, default=1)
    requires_acknowledgment: Mapped[bool] = mapped_column(Boolean, default=False)
    access_roles: Mapped[list] = mapped_column(JSONB, default=list)
    uploaded_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_hr_documents_org_folder", "organization_id", "folder_path"),
    )

    def __repr__(self) -> str:
        return f"<HRDocument title={self.title!r} v{self.version}>"


class HRDocumentVersion(Base):
    __tablename__ = "hr_document_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_documents.id", ondelete="CASCADE"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    estimated_reading_time: Mapped[int] = mapped_column(Integer, default=0)
    folder_path: Mapped[str] = mapped_column(String(500), default="/")
    requires_acknowledgment: Mapped[bool] = mapped_column(Boolean, default=False)
    access_roles: Mapped[list] = mapped_column(JSONB, default=list)
    change_summary: Mapped[str | None] = mapped_column(Text, default=None)
    requires_reacknowledgment: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_version"),
    )

    def __repr__(self) -> str:
        return f"<HRDocumentVersion doc={self.document_id} v{self.version_number}>"


class HRDocumentAcknowledgment(Base):
    __tablename__ = "hr_document_acknowledgments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hr_documents.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    acknowledged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    acknowledged_version: Mapped[int] = mapped_column(Integer, nullable=False)
    requires_reacknowledgment: Mapped[bool] = mapped_column(Boolean, default=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    invalidated_by: Mapped[str | None] = mapped_column(String(36), default=None)
    ip_address: Mapped[str | None] = mapped_column(String(45), default=None)

    __table_args__ = (
        UniqueConstraint("document_id", "user_id", name="uq_document_ack_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<HRDocumentAcknowledgment doc={self.document_id} user={self.user_id} "
            f"v{self.acknowledged_version} reack={self.requires_reacknowledgment}>"
        )


# ---------------------------------------------------------------------------
# AuditLog — append-only audit trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    organization_id: Mapped[str | None] = mapped_column(String(36), default=None)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_audit_log_actor_time", "actor_id", "timestamp"),
        Index("ix_audit_log_org_time", "organization_id", "timestamp"),
        Index("ix_audit_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# RateLimitEvent — durable mutation events for per-user throttling
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rate_limit_user_ts", "user_id", timestamp.desc()),
        Index("ix_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitEvent user={self.user_id!r} ts={self.timestamp}>"

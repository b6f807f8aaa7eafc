"""
scorgs.constants — Shared Constants
====================================

Single source of truth for the permission catalogue, the default role
bundles every organization starts with, and the HR field limits.
Import from here instead of duplicating in services, routes, and the bot.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Permission catalogue
# ---------------------------------------------------------------------------
class Permission(enum.StrEnum):
    """Every grantable organization permission."""
    # Organization
    MANAGE_ORGANIZATION = "manage_organization"
    UPDATE_ORGANIZATION = "update_organization"
    DELETE_ORGANIZATION = "delete_organization"
    # Members
    MANAGE_MEMBERS = "manage_members"
    INVITE_MEMBERS = "invite_members"
    REMOVE_MEMBERS = "remove_members"
    VIEW_MEMBERS = "view_members"
    # Roles
    MANAGE_ROLES = "manage_roles"
    CREATE_ROLES = "create_roles"
    UPDATE_ROLES = "update_roles"
    DELETE_ROLES = "delete_roles"
    ASSIGN_ROLES = "assign_roles"
    # Events
    MANAGE_EVENTS = "manage_events"
    CREATE_EVENTS = "create_events"
    UPDATE_EVENTS = "update_events"
    DELETE_EVENTS = "delete_events"
    # Comments
    MANAGE_COMMENTS = "manage_comments"
    MODERATE_COMMENTS = "moderate_comments"
    DELETE_COMMENTS = "delete_comments"
    # Integrations
    MANAGE_INTEGRATIONS = "manage_integrations"
    UPDATE_RSI_INTEGRATION = "update_rsi_integration"
    UPDATE_DISCORD_INTEGRATION = "update_discord_integration"
    # Analytics
    VIEW_ANALYTICS = "view_analytics"
    VIEW_REPORTS = "view_reports"
    # HR roles
    HR_MANAGER = "hr_manager"
    HR_RECRUITER = "hr_recruiter"
    HR_SUPERVISOR = "hr_supervisor"
    # HR applications
    MANAGE_HR_APPLICATIONS = "manage_hr_applications"
    VIEW_HR_APPLICATIONS = "view_hr_applications"
    PROCESS_HR_APPLICATIONS = "process_hr_applications"
    # HR onboarding
    MANAGE_HR_ONBOARDING = "manage_hr_onboarding"
    VIEW_HR_ONBOARDING = "view_hr_onboarding"
    CREATE_ONBOARDING_TEMPLATES = "create_onboarding_templates"
    # HR performance
    MANAGE_HR_PERFORMANCE = "manage_hr_performance"
    VIEW_HR_PERFORMANCE = "view_hr_performance"
    CONDUCT_PERFORMANCE_REVIEWS = "conduct_performance_reviews"
    # HR skills
    MANAGE_HR_SKILLS = "manage_hr_skills"
    VIEW_HR_SKILLS = "view_hr_skills"
    VERIFY_SKILLS = "verify_skills"
    # HR documents
    MANAGE_HR_DOCUMENTS = "manage_hr_documents"
    VIEW_HR_DOCUMENTS = "view_hr_documents"
    UPLOAD_HR_DOCUMENTS = "upload_hr_documents"
    # HR analytics
    VIEW_HR_ANALYTICS = "view_hr_analytics"
    MANAGE_HR_ANALYTICS = "manage_hr_analytics"


ALL_PERMISSIONS: tuple[str, ...] = tuple(p.value for p in Permission)


# ---------------------------------------------------------------------------
# Default roles — created for every new organization
# ---------------------------------------------------------------------------
OWNER_ROLE_NAME = "Owner"
MEMBER_ROLE_NAME = "Member"
OWNER_RANK = 100

_ADMIN_PERMISSIONS = (
    Permission.MANAGE_ORGANIZATION,
    Permission.UPDATE_ORGANIZATION,
    Permission.MANAGE_MEMBERS,
    Permission.INVITE_MEMBERS,
    Permission.REMOVE_MEMBERS,
    Permission.VIEW_MEMBERS,
    Permission.MANAGE_ROLES,
    Permission.CREATE_ROLES,
    Permission.UPDATE_ROLES,
    Permission.DELETE_ROLES,
    Permission.ASSIGN_ROLES,
    Permission.MANAGE_EVENTS,
    Permission.CREATE_EVENTS,
    Permission.UPDATE_EVENTS,
    Permission.DELETE_EVENTS,
    Permission.MANAGE_COMMENTS,
    Permission.MODERATE_COMMENTS,
    Permission.DELETE_COMMENTS,
    Permission.MANAGE_INTEGRATIONS,
    Permission.UPDATE_RSI_INTEGRATION,
    Permission.UPDATE_DISCORD_INTEGRATION,
    Permission.VIEW_ANALYTICS,
    Permission.VIEW_REPORTS,
)

_HR_MANAGER_PERMISSIONS = (
    Permission.VIEW_MEMBERS,
    Permission.HR_MANAGER,
    Permission.MANAGE_HR_APPLICATIONS,
    Permission.VIEW_HR_APPLICATIONS,
    Permission.PROCESS_HR_APPLICATIONS,
    Permission.MANAGE_HR_ONBOARDING,
    Permission.VIEW_HR_ONBOARDING,
    Permission.CREATE_ONBOARDING_TEMPLATES,
    Permission.MANAGE_HR_PERFORMANCE,
    Permission.VIEW_HR_PERFORMANCE,
    Permission.CONDUCT_PERFORMANCE_REVIEWS,
    Permission.MANAGE_HR_SKILLS,
    Permission.VIEW_HR_SKILLS,
    Permission.VERIFY_SKILLS,
    Permission.MANAGE_HR_DOCUMENTS,
    Permission.VIEW_HR_DOCUMENTS,
    Permission.UPLOAD_HR_DOCUMENTS,
    Permission.VIEW_HR_ANALYTICS,
    Permission.MANAGE_HR_ANALYTICS,
)

_RECRUITER_PERMISSIONS = (
    Permission.VIEW_MEMBERS,
    Permission.INVITE_MEMBERS,
    Permission.HR_RECRUITER,
    Permission.VIEW_HR_APPLICATIONS,
    Permission.PROCESS_HR_APPLICATIONS,
    Permission.VIEW_HR_ONBOARDING,
    Permission.VIEW_HR_SKILLS,
    Permission.VIEW_HR_DOCUMENTS,
)

_SUPERVISOR_PERMISSIONS = (
    Permission.VIEW_MEMBERS,
    Permission.HR_SUPERVISOR,
    Permission.VIEW_HR_ONBOARDING,
    Permission.VIEW_HR_PERFORMANCE,
    Permission.CONDUCT_PERFORMANCE_REVIEWS,
    Permission.VIEW_HR_SKILLS,
    Permission.VERIFY_SKILLS,
    Permission.VIEW_HR_DOCUMENTS,
)

_MEMBER_PERMISSIONS = (
    Permission.VIEW_MEMBERS,
    Permission.CREATE_EVENTS,
    Permission.UPDATE_EVENTS,
)

# (name, description, rank, is_system_role, is_editable, permissions)
DEFAULT_ROLES: tuple[tuple[str, str, int, bool, bool, tuple[str, ...]], ...] = (
    (OWNER_ROLE_NAME, "Organization owner with full permissions",
     OWNER_RANK, True, False, ALL_PERMISSIONS),
    ("Admin", "Organization administrator", 80, True, True,
     tuple(_ADMIN_PERMISSIONS)),
    ("HR Manager", "Runs applications, onboarding, reviews and documents", 70,
     False, True, tuple(_HR_MANAGER_PERMISSIONS)),
    ("Recruiter", "Screens and processes applications", 50, False, True,
     tuple(_RECRUITER_PERMISSIONS)),
    ("Supervisor", "Conducts reviews and verifies skills", 40, False, True,
     tuple(_SUPERVISOR_PERMISSIONS)),
    (MEMBER_ROLE_NAME, "Regular organization member", 10, True, True,
     tuple(_MEMBER_PERMISSIONS)),
)

HR_ROLE_NAMES: frozenset[str] = frozenset({"HR Manager", "Recruiter", "Supervisor"})

MIN_CUSTOM_ROLE_RANK = 1
MAX_CUSTOM_ROLE_RANK = 99


# ---------------------------------------------------------------------------
# HR limits
# ---------------------------------------------------------------------------
APPLICATION_FIELD_LIMITS: dict[str, int] = {
    "cover_letter": 5000,
    "experience": 3000,
    "availability": 1000,
}
APPLICATION_CUSTOM_FIELDS_LIMIT = 10_000

MAX_REVIEW_PERIOD_DAYS = 365
FIRST_REVIEW_DUE_DAYS = 90
REVIEW_CYCLE_DAYS = 365

MAX_EVENT_REVIEW_LENGTH = 1000
MAX_COMMENT_LENGTH = 2000

INVITE_CODE_LENGTH = 12

SKILL_CATEGORIES: tuple[str, ...] = (
    "pilot", "engineer", "medic", "security", "logistics", "leadership",
)
PROFICIENCY_LEVELS: tuple[str, ...] = (
    "beginner", "intermediate", "advanced", "expert",
)

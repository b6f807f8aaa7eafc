"""
scorgs.api.deps — FastAPI dependency injection
===============================================
"""

from __future__ import annotations

import os
from collections.abc import Callable
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from scorgs.clients.discord_api import DiscordRestClient
from scorgs.clients.rsi import RSIClient
from scorgs.config import ScorgsConfig, load_config
from scorgs.database.engine import create_db_engine
from scorgs.database.models import Organization, User
from scorgs.services.common import find_organization_by_rsi_id
from scorgs.services.role_service import active_member, permissions_for

_WEAK_SECRETS = frozenset({
    "scorgs-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ScorgsConfig:
    return load_config(os.getenv("SCORGS_CONFIG", "config.yaml"))


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def get_rsi_client(cfg: Annotated[ScorgsConfig, Depends(get_config)]) -> RSIClient:
    return RSIClient(cfg.rsi_base_url)


def get_discord_client() -> DiscordRestClient | None:
    """Bot REST client, or ``None`` when no bot token is configured."""
    token = os.getenv("DISCORD_BOT_TOKEN") or os.getenv("DISCORD_TOKEN")
    if not token:
        return None
    return DiscordRestClient(token)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
def _decode(authorization: str | None) -> dict | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        return None


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
) -> dict:
    """Validate the Bearer JWT and return its payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    payload = _decode(authorization)
    if payload is None or not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if session.get(User, payload["sub"]) is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User not found")
    return payload


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
) -> dict | None:
    """Payload for a valid token, ``None`` for anonymous or bad tokens."""
    payload = _decode(authorization)
    if payload is None or not payload.get("sub"):
        return None
    if session.get(User, payload["sub"]) is None:
        return None
    return payload


# ---------------------------------------------------------------------------
# Organization guards
# ---------------------------------------------------------------------------
def get_org(rsi_org_id: str, session: Session = Depends(get_session)) -> Organization:
    """Resolve the ``{rsi_org_id}`` path parameter to an active organization."""
    org = find_organization_by_rsi_id(session, rsi_org_id)
    if org is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Organization not found")
    return org


def get_member_org(
    org: Organization = Depends(get_org),
    user: dict = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Organization:
    """The organization, provided the caller is an active member (or owner)."""
    if org.owner_id != user["sub"] and active_member(session, org.id, user["sub"]) is None:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not a member of this organization")
    return org


def require_org_permission(*permissions: str) -> Callable[..., Organization]:
    """Dependency factory: 403 unless the caller holds one of *permissions*.

    Usage::

        @router.post("/{rsi_org_id}/roles")
        def create_role(org: Organization = Depends(require_org_permission(Permission.MANAGE_ROLES))):
            ...
    """
    wanted = [str(p) for p in permissions]

    def _guard(
        org: Organization = Depends(get_org),
        user: dict = Depends(get_current_user),
        session: Session = Depends(get_session),
    ) -> Organization:
        granted = permissions_for(session, org, user["sub"])
        if not any(p in granted for p in wanted):
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Insufficient permissions")
        return org

    return _guard

"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Secrets must exist before scorgs.api.deps is imported (it validates
# JWT_SECRET at module-load time) and before any verification code is made.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("VERIFICATION_SECRET", "test-verification-secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from scorgs.clients.rsi import RSIOrganizationPage  # noqa: E402
from scorgs.database.models import Base, OrganizationMember, Organization  # noqa: E402
from scorgs.services import organization_service, user_service  # noqa: E402
from scorgs.services.role_service import role_by_name  # noqa: E402
from scorgs.services.verification import generate_verification_code  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all SC Orgs tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db`` and the rate
    limiter).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_token(sub: str, username: str = "FixturePilot") -> str:
    """Create a user JWT.  ``sub`` must be an existing user id."""
    import jwt

    from scorgs.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "username": username}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def make_user(engine: Engine, username: str) -> str:
    """Create (or fetch) a user keyed on a Discord id derived from *username*."""
    return user_service.get_or_create_user(engine, f"discord-{username}", username)["id"]


def org_page(
    owner_id: str | None,
    spectrum_id: str = "TESTORG",
    name: str = "Test Squadron",
    extra: str = "",
) -> RSIOrganizationPage:
    """A scraped page whose description carries *owner_id*'s sentinel."""
    code = generate_verification_code(owner_id) if owner_id else ""
    return RSIOrganizationPage(
        spectrum_id=spectrum_id,
        name=name,
        headline="Best in the verse",
        description=f"We fly together. {code} {extra}".strip(),
        member_count=42,
    )


def make_org(engine: Engine, owner_id: str, spectrum_id: str = "TESTORG", **kwargs) -> dict:
    return organization_service.create_organization(
        engine, owner_id, spectrum_id, org_page(owner_id, spectrum_id), **kwargs,
    )


def add_member(engine: Engine, organization_id: str, user_id: str, role_name: str = "Member") -> None:
    """Insert an active membership on a default role, bypassing invites."""
    with Session(engine) as session:
        role = role_by_name(session, organization_id, role_name)
        session.add(OrganizationMember(
            organization_id=organization_id, user_id=user_id, role_id=role.id,
        ))
        org = session.get(Organization, organization_id)
        org.total_members = (org.total_members or 0) + 1
        session.commit()


@pytest.fixture
def owner(db_engine) -> str:
    return make_user(db_engine, "OrgOwner")


@pytest.fixture
def org(db_engine, owner) -> dict:
    return make_org(db_engine, owner)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def rsi_pages() -> dict[str, str]:
    """Path → HTML served by the mocked RSI site; unknown paths are 404."""
    return {}


@pytest.fixture
def client(db_engine, rsi_pages):
    """TestClient wired to the in-memory database and a mocked RSI site."""
    from fastapi.testclient import TestClient

    from scorgs.api import deps
    from scorgs.api.main import app
    from scorgs.api.rate_limit import configure_rate_limiter
    from scorgs.clients.rsi import RSIClient
    from scorgs.config import DEFAULT_CONFIG

    def _rsi_handler(request: httpx.Request) -> httpx.Response:
        html = rsi_pages.get(request.url.path)
        if html is None:
            return httpx.Response(404, text="Not found")
        return httpx.Response(200, text=html)

    rsi = RSIClient(
        DEFAULT_CONFIG.rsi_base_url,
        client=httpx.AsyncClient(transport=httpx.MockTransport(_rsi_handler)),
    )

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: DEFAULT_CONFIG
    app.dependency_overrides[deps.get_rsi_client] = lambda: rsi
    app.dependency_overrides[deps.get_discord_client] = lambda: None
    configure_rate_limiter(engine=db_engine)

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()

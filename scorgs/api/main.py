"""
scorgs.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn scorgs.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from scorgs import __version__  # noqa: E402
from scorgs.api.auth import router as auth_router  # noqa: E402
from scorgs.api.deps import get_engine  # noqa: E402
from scorgs.api.rate_limit import configure_rate_limiter  # noqa: E402
from scorgs.api.routes.comments import comments_router  # noqa: E402
from scorgs.api.routes.comments import router as comments_org_router  # noqa: E402
from scorgs.api.routes.discord import router as discord_router  # noqa: E402
from scorgs.api.routes.events import router as events_router  # noqa: E402
from scorgs.api.routes.hr_activity import router as hr_activity_router  # noqa: E402
from scorgs.api.routes.hr_applications import router as hr_applications_router  # noqa: E402
from scorgs.api.routes.hr_documents import router as hr_documents_router  # noqa: E402
from scorgs.api.routes.hr_onboarding import router as hr_onboarding_router  # noqa: E402
from scorgs.api.routes.hr_performance import router as hr_performance_router  # noqa: E402
from scorgs.api.routes.hr_skills import router as hr_skills_router  # noqa: E402
from scorgs.api.routes.hr_skills import skills_router  # noqa: E402
from scorgs.api.routes.invites import router as invites_router  # noqa: E402
from scorgs.api.routes.notifications import router as notifications_router  # noqa: E402
from scorgs.api.routes.organizations import router as organizations_router  # noqa: E402
from scorgs.api.routes.roles import router as roles_router  # noqa: E402
from scorgs.api.routes.users import router as users_router  # noqa: E402
from scorgs.errors import ScorgsError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    configure_rate_limiter(engine=engine)
    logger.info("SC Orgs API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("SC Orgs API shutting down")


app = FastAPI(
    title="SC Orgs API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ScorgsError)
async def scorgs_error_handler(request: Request, exc: ScorgsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **exc.extra},
    )


app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(organizations_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(invites_router, prefix="/api")
app.include_router(discord_router, prefix="/api")
app.include_router(hr_applications_router, prefix="/api")
app.include_router(hr_onboarding_router, prefix="/api")
app.include_router(hr_performance_router, prefix="/api")
app.include_router(hr_skills_router, prefix="/api")
app.include_router(hr_documents_router, prefix="/api")
app.include_router(hr_activity_router, prefix="/api")
app.include_router(comments_org_router, prefix="/api")
app.include_router(comments_router, prefix="/api")
app.include_router(skills_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

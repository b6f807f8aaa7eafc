"""
scorgs.api.rate_limit — Per-user mutation rate limiting
========================================================

60 mutations per minute per authenticated user.

Uses a sliding-window counter keyed by user ID (JWT ``sub`` claim) and
stored in ``rate_limit_events`` so the window survives restarts and is
shared across API workers.  Returns HTTP 429 with a ``Retry-After``
header when the limit is exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from scorgs.api.deps import get_current_user
from scorgs.database.models import RateLimitEvent
from scorgs.services.common import as_utc

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 60
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class UserRateLimiter:
    """Sliding-window rate limiter backed by the ``rate_limit_events`` table."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    def _prune(self, session: Session, user_id: str, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.window_seconds)
        session.execute(
            delete(RateLimitEvent).where(
                RateLimitEvent.user_id == user_id,
                RateLimitEvent.timestamp < cutoff,
            )
        )

    def check(self, user_id: str) -> tuple[bool, dict[str, Any]]:
        """Return ``(allowed, info)``; info has ``remaining``, ``reset`` and ``limit``."""
        now = datetime.now(UTC)
        with Session(self.engine) as session:
            self._prune(session, user_id, now)
            timestamps = session.scalars(
                select(RateLimitEvent.timestamp)
                .where(RateLimitEvent.user_id == user_id)
                .order_by(RateLimitEvent.timestamp.asc())
            ).all()
            session.commit()

        count = len(timestamps)
        if count >= self.max_requests:
            oldest = as_utc(timestamps[0])
            reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
            return False, {
                "remaining": 0,
                "reset": max(1, int(reset) + 1),
                "limit": self.max_requests,
            }

        return True, {
            "remaining": self.max_requests - count,
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def record(self, user_id: str) -> dict[str, Any]:
        """Record one request and return the updated window info."""
        now = datetime.now(UTC)
        with Session(self.engine) as session:
            self._prune(session, user_id, now)
            session.add(RateLimitEvent(user_id=user_id, timestamp=now))
            session.flush()
            count = session.scalar(
                select(func.count(RateLimitEvent.id)).where(RateLimitEvent.user_id == user_id)
            ) or 0
            session.commit()

        return {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, user_id: str | None = None) -> None:
        """Clear rate limit state. If user_id is None, clear all."""
        with Session(self.engine) as session:
            stmt = delete(RateLimitEvent)
            if user_id is not None:
                stmt = stmt.where(RateLimitEvent.user_id == user_id)
            session.execute(stmt)
            session.commit()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: UserRateLimiter | None = None


def get_rate_limiter() -> UserRateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured — call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(
    *,
    engine: Engine,
    max_requests: int = DEFAULT_RATE_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> UserRateLimiter:
    global _limiter
    _limiter = UserRateLimiter(max_requests, window_seconds, engine=engine)
    return _limiter


# ---------------------------------------------------------------------------
# FastAPI dependency — chains after get_current_user
# ---------------------------------------------------------------------------
async def rate_limited_user(request: Request, user: dict = Depends(get_current_user)) -> dict:
    """Authenticate *and* count mutations against the caller's window.

    GET/HEAD/OPTIONS pass straight through.  Use ``Depends(rate_limited_user)``
    in place of ``Depends(get_current_user)`` on write endpoints.
    """
    if request.method not in _MUTATION_METHODS:
        return user

    limiter = get_rate_limiter()
    user_id = user["sub"]
    allowed, info = await asyncio.to_thread(limiter.check, user_id)
    if not allowed:
        logger.warning(
            "Rate limit exceeded for user %s: %d requests per %ds",
            user_id, limiter.max_requests, limiter.window_seconds,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Rate limit exceeded: {limiter.max_requests} requests per minute.",
                "retry_after": info["reset"],
            },
            headers={"Retry-After": str(info["reset"])},
        )

    await asyncio.to_thread(limiter.record, user_id)
    return user

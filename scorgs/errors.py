"""
scorgs.errors — Domain exceptions raised by the service layer
==============================================================

Services raise these instead of ``HTTPException`` so the same functions
can be called from the API, the Discord bot, and tests.  Each class carries
the HTTP status the API exception handler maps it to.  ``extra`` holds
additional keys merged into the JSON error body (e.g. the verification code
a user still needs to post).
"""

from __future__ import annotations

from typing import Any


class ScorgsError(ValueError):
    """Base class for business-rule failures."""

    status_code = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra


class InvalidInputError(ScorgsError):
    status_code = 400


class PermissionDeniedError(ScorgsError):
    status_code = 403


class NotFoundError(ScorgsError):
    status_code = 404


class ConflictError(ScorgsError):
    status_code = 409


class ExternalServiceError(ScorgsError):
    """An upstream service (RSI, Discord) failed or returned garbage."""

    status_code = 502

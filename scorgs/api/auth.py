"""
scorgs.api.auth — Current user & RSI account verification
==========================================================

Tokens are issued by the Discord login flow in front of this API; here we
only read them.  ``/verify-rsi`` scrapes the citizen page for the user's
verification code.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from scorgs.api.deps import get_current_user, get_engine, get_rsi_client
from scorgs.api.rate_limit import rate_limited_user
from scorgs.clients.rsi import RSIClient
from scorgs.database.engine import run_db
from scorgs.errors import ExternalServiceError
from scorgs.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class VerifyRSIBody(BaseModel):
    rsi_handle: str = Field(min_length=1, max_length=60)


@router.get("/me")
def me(user: dict = Depends(get_current_user), engine=Depends(get_engine)):
    """Return the current user's profile."""
    return user_service.get_user(engine, user["sub"])


@router.get("/verification-code")
def verification_code(user: dict = Depends(get_current_user)):
    code = user_service.get_verification_code(user["sub"])
    return {
        "verification_code": code,
        "instructions": "Add this code to your RSI bio, then verify your account.",
    }


@router.post("/verify-rsi")
async def verify_rsi(
    body: VerifyRSIBody,
    user: dict = Depends(rate_limited_user),
    engine=Depends(get_engine),
    rsi: RSIClient = Depends(get_rsi_client),
):
    handle = body.rsi_handle.strip()
    bio = await rsi.fetch_citizen_bio(handle)
    if bio is None:
        raise ExternalServiceError(f"Could not load the RSI profile for '{handle}'")
    return await run_db(user_service.verify_rsi_account, engine, user["sub"], handle, bio)

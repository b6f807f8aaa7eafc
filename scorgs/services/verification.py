"""
scorgs.services.verification — Verification sentinels
=======================================================

A *sentinel* is a short code a user pastes into an external profile (their
RSI bio, or their organization's page) to prove they control it.

User codes are deterministic: ``[SCORGS:XXXXXXXX]`` where ``XXXXXXXX`` is the
first 8 hex digits of ``HMAC-SHA256(VERIFICATION_SECRET, user_id)``,
upper-cased.  The same user always gets the same code, so nothing has to be
stored, and nobody can compute another user's code without the secret.

Organization sentinels are random and stored on the organization row.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import re
import secrets

SENTINEL_PREFIX = "SCORGS"
_CODE_RE = re.compile(r"SCORGS:([A-F0-9]{8})", re.IGNORECASE)


def _verification_secret() -> str:
    secret = os.getenv("VERIFICATION_SECRET", "")
    if not secret:
        raise RuntimeError(
            "VERIFICATION_SECRET environment variable is not set. "
            "It is required to generate user verification codes."
        )
    return secret


def generate_verification_code(user_id: str) -> str:
    """Return the bracketed sentinel for *user_id*."""
    digest = hmac.new(
        _verification_secret().encode("utf-8"),
        str(user_id).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"[{SENTINEL_PREFIX}:{digest[:8].upper()}]"


def generate_org_sentinel() -> str:
    """Random sentinel for an organization page."""
    return f"[{SENTINEL_PREFIX}:{secrets.token_hex(4).upper()}]"


def verify_code(provided: str, expected: str) -> bool:
    """Exact comparison after trimming surrounding whitespace."""
    return hmac.compare_digest(provided.strip(), expected.strip())


def extract_codes(content: str | None) -> list[str]:
    """Find every sentinel in *content*, normalised to ``[SCORGS:XXXXXXXX]``."""
    if not content:
        return []
    return [f"[{SENTINEL_PREFIX}:{m.upper()}]" for m in _CODE_RE.findall(content)]


def strip_brackets(code: str) -> str:
    return code.strip().strip("[]")


def content_contains_code(content: str | None, code: str) -> bool:
    """True when the bracket-less form of *code* appears in *content*.

    Users often lose the brackets when pasting into RSI's editor, so only
    the inner ``SCORGS:XXXXXXXX`` part has to survive.
    """
    if not content or not code:
        return False
    return strip_brackets(code).upper() in content.upper()

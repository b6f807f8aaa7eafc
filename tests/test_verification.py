"""
tests/test_verification.py — Verification Sentinel Tests
==========================================================
User codes are deterministic HMACs of the user id; organization sentinels
are random.  Matching tolerates lost brackets and case changes.
"""

from __future__ import annotations

import os
import re
from unittest.mock import patch

import pytest

from scorgs.services.verification import (
    content_contains_code,
    extract_codes,
    generate_org_sentinel,
    generate_verification_code,
    strip_brackets,
    verify_code,
)

_CODE_FORMAT = re.compile(r"^\[SCORGS:[A-F0-9]{8}\]$")


class TestGenerateVerificationCode:

    def test_format(self):
        assert _CODE_FORMAT.match(generate_verification_code("user-1"))

    def test_deterministic_per_user(self):
        assert generate_verification_code("user-1") == generate_verification_code("user-1")

    def test_differs_between_users(self):
        assert generate_verification_code("user-1") != generate_verification_code("user-2")

    def test_depends_on_secret(self):
        first = generate_verification_code("user-1")
        with patch.dict(os.environ, {"VERIFICATION_SECRET": "another-secret"}):
            assert generate_verification_code("user-1") != first

    def test_missing_secret_raises(self):
        with patch.dict(os.environ, {"VERIFICATION_SECRET": ""}):
            with pytest.raises(RuntimeError, match="VERIFICATION_SECRET"):
                generate_verification_code("user-1")


class TestOrgSentinel:

    def test_format(self):
        assert _CODE_FORMAT.match(generate_org_sentinel())

    def test_random(self):
        assert len({generate_org_sentinel() for _ in range(20)}) > 1


class TestMatching:

    def test_verify_code_trims_whitespace(self):
        assert verify_code("  [SCORGS:ABCD1234] \n", "[SCORGS:ABCD1234]")

    def test_verify_code_is_exact(self):
        assert not verify_code("[SCORGS:ABCD1234]", "[SCORGS:ABCD1235]")

    def test_extract_codes_normalises_case(self):
        text = "first [scorgs:abcd1234] then SCORGS:FFFF0000 and junk [SCORGS:XYZ]"
        assert extract_codes(text) == ["[SCORGS:ABCD1234]", "[SCORGS:FFFF0000]"]

    def test_extract_codes_empty(self):
        assert extract_codes(None) == []
        assert extract_codes("") == []

    def test_strip_brackets(self):
        assert strip_brackets(" [SCORGS:ABCD1234] ") == "SCORGS:ABCD1234"

    def test_content_contains_code_without_brackets(self):
        assert content_contains_code("About us: SCORGS:ABCD1234", "[SCORGS:ABCD1234]")

    def test_content_contains_code_case_insensitive(self):
        assert content_contains_code("about us: scorgs:abcd1234", "[SCORGS:ABCD1234]")

    def test_content_missing_code(self):
        assert not content_contains_code("nothing here", "[SCORGS:ABCD1234]")
        assert not content_contains_code(None, "[SCORGS:ABCD1234]")
        assert not content_contains_code("SCORGS:ABCD1234", "")

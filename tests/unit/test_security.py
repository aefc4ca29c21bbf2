"""Unit tests for token handling and one-time code helpers."""

import hashlib
import hmac
import re
from datetime import timedelta

import pytest

from academy_auth.config import Settings
from academy_auth.core.security import (
    codes_match,
    create_access_token,
    create_mfa_token,
    decode_mfa_token,
    decode_token,
    generate_backup_code,
    generate_verification_code,
    hash_code,
    normalize_backup_code,
)

SECRET = "first-secret-key-for-code-hashing-0000"
OTHER_SECRET = "second-secret-key-for-code-hashing-000"


@pytest.mark.unit
class TestTokens:
    """Access and two-factor step tokens."""

    def test_access_token_round_trip(self):
        token = create_access_token({"sub": "abc", "email": "a@academy.example"})

        payload = decode_token(token, expected_type="access")

        assert payload is not None
        assert payload["sub"] == "abc"
        assert payload["email"] == "a@academy.example"

    def test_expired_token_rejected(self):
        token = create_access_token({"sub": "abc"}, expires_delta=timedelta(seconds=-5))

        assert decode_token(token) is None

    def test_tampered_token_rejected(self):
        token = create_access_token({"sub": "abc"})

        assert decode_token(token[:-2] + "xx") is None

    def test_mfa_token_is_not_an_access_token(self):
        token = create_mfa_token("user-1")

        assert decode_mfa_token(token)["sub"] == "user-1"
        assert decode_token(token, expected_type="access") is None

    def test_access_token_is_not_an_mfa_token(self):
        token = create_access_token({"sub": "abc"})

        assert decode_mfa_token(token) is None

    def test_tokens_use_the_given_settings(self):
        other = Settings(secret_key=OTHER_SECRET)

        token = create_access_token({"sub": "abc"}, settings=other)

        assert decode_token(token, settings=other)["sub"] == "abc"
        assert decode_token(token) is None


@pytest.mark.unit
class TestOneTimeCodes:
    """Backup and verification code helpers."""

    def test_backup_code_format(self):
        for _ in range(20):
            assert re.fullmatch(r"[0-9A-F]{4}-[0-9A-F]{4}", generate_backup_code())

    def test_verification_code_format(self):
        for _ in range(20):
            assert re.fullmatch(r"\d{6}", generate_verification_code())

    @pytest.mark.parametrize(
        "raw",
        ["ab12-cd34", " AB12CD34 ", "ab12 cd34", "AB1-2CD34", "AB12-CD34"],
    )
    def test_normalize_backup_code(self, raw):
        assert normalize_backup_code(raw) == "AB12-CD34"

    def test_normalize_leaves_wrong_length_alone(self):
        assert normalize_backup_code("abc") == "ABC"

    def test_hash_is_stable(self):
        digest = hash_code("123456", SECRET)

        assert digest == hash_code("123456", SECRET)
        assert digest != hash_code("123457", SECRET)
        assert len(digest) == 64
        assert "123456" not in digest

    def test_hash_is_hmac_of_given_key(self):
        expected = hmac.new(SECRET.encode(), b"123456", hashlib.sha256).hexdigest()

        assert hash_code("123456", SECRET) == expected
        assert hash_code("123456", OTHER_SECRET) != expected

    def test_codes_match(self):
        digest = hash_code("AB12-CD34", SECRET)

        assert codes_match("AB12-CD34", digest, SECRET)
        assert not codes_match("AB12-CD35", digest, SECRET)
        assert not codes_match("AB12-CD34", digest, OTHER_SECRET)

"""Unit tests for two-factor router helpers."""

from uuid import uuid4

import pytest

from academy_auth.core.security import create_access_token, create_mfa_token
from academy_auth.routers.two_factor import _mfa_subject


@pytest.mark.unit
class TestMfaSubject:
    """Tests for _mfa_subject()."""

    def test_valid_token(self):
        user_id = uuid4()

        assert _mfa_subject(create_mfa_token(str(user_id))) == user_id

    def test_access_token_rejected(self):
        token = create_access_token({"sub": str(uuid4()), "email": "a@academy.example"})

        assert _mfa_subject(token) is None

    def test_non_uuid_subject_rejected(self):
        assert _mfa_subject(create_mfa_token("not-a-uuid")) is None

    def test_garbage_rejected(self):
        assert _mfa_subject("not.a.jwt") is None

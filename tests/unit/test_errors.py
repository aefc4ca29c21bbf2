"""Unit tests for the error taxonomy and store error translation."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import IntegrityError, OperationalError

from academy_auth.config import Settings
from academy_auth.core.errors import (
    CeremonyError,
    ChallengeExpired,
    CounterRegression,
    StoreUnavailable,
    store_errors,
)


@pytest.mark.unit
class TestStoreErrors:
    """Tests for store_errors()."""

    @pytest.mark.parametrize(
        "error",
        [
            RedisConnectionError("refused"),
            RedisTimeoutError("timed out"),
            OperationalError("SELECT 1", {}, Exception("server closed the connection")),
        ],
    )
    def test_connectivity_errors_become_store_unavailable(self, error):
        with pytest.raises(StoreUnavailable) as exc_info:
            with store_errors("database"):
                raise error

        assert exc_info.value.store == "database"
        assert exc_info.value.__cause__ is error

    @pytest.mark.parametrize(
        "error",
        [
            ResponseError("WRONGTYPE"),
            IntegrityError("INSERT", {}, Exception("duplicate key")),
            ValueError("boom"),
        ],
    )
    def test_other_errors_propagate(self, error):
        with pytest.raises(type(error)):
            with store_errors("redis"):
                raise error


@pytest.mark.unit
class TestCeremonyErrors:
    """Reason tags and messages."""

    def test_reason_is_default_message(self):
        assert str(ChallengeExpired()) == "challenge_expired"

    def test_custom_message_keeps_reason(self):
        error = CounterRegression("stored=5 reported=3")

        assert error.reason == "counter_regression"
        assert str(error) == "stored=5 reported=3"
        assert isinstance(error, CeremonyError)


@pytest.mark.unit
class TestSettings:
    """Configuration parsing."""

    def test_multiple_origins(self):
        settings = Settings(
            secret_key="x" * 32,
            webauthn_origin="https://academy.example, https://app.academy.example ,",
        )

        assert settings.webauthn_origins == [
            "https://academy.example",
            "https://app.academy.example",
        ]

    def test_secret_key_length_enforced(self):
        with pytest.raises(ValueError):
            Settings(secret_key="short")

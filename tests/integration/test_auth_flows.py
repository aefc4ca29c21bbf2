"""
Integration tests for the authentication endpoints.

Runs the full FastAPI application in-process against the in-memory database
and the Redis double. Cryptographic verification is stubbed; everything
else (routing, dependencies, error mapping, commits) is real.
"""

import json
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.structs import CredentialDeviceType

from academy_auth.core.cache import get_redis
from academy_auth.core.database import get_db
from academy_auth.core.security import create_access_token, decode_token, hash_code
from academy_auth.main import create_app
from academy_auth.models.orm import BackupCode

ORIGIN = "https://academy.example"


def _client_data(ceremony_type: str, challenge: str) -> str:
    payload = {"type": ceremony_type, "challenge": challenge, "origin": ORIGIN}
    return bytes_to_base64url(json.dumps(payload).encode())


def _credential(ceremony_type: str, challenge: str, raw_id: bytes) -> dict:
    credential_id = bytes_to_base64url(raw_id)
    return {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "response": {"clientDataJSON": _client_data(ceremony_type, challenge)},
    }


@pytest.fixture
def stub_verifier(monkeypatch):
    """Accept any attestation/assertion with an advancing counter."""
    state = {"sign_count": 0}

    def verify_registration(**kwargs):
        return SimpleNamespace(
            credential_id=base64url_to_bytes(kwargs["credential"]["rawId"]),
            credential_public_key=b"cose-public-key",
            sign_count=0,
            credential_device_type=CredentialDeviceType.MULTI_DEVICE,
            credential_backed_up=True,
        )

    def verify_authentication(**kwargs):
        state["sign_count"] += 1
        return SimpleNamespace(new_sign_count=state["sign_count"])

    monkeypatch.setattr("academy_auth.services.ceremony.verify_registration_response", verify_registration)
    monkeypatch.setattr("academy_auth.services.ceremony.verify_authentication_response", verify_authentication)
    return state


@pytest.fixture
def app(db_session, fake_redis):
    application = create_app()

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    async def override_get_redis():
        return fake_redis

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_redis] = override_get_redis
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(user):
    token = create_access_token({"sub": str(user.id), "email": user.email, "name": user.name})
    return {"Authorization": f"Bearer {token}"}


async def _register(client, auth_headers, raw_id=b"device-1", name="MacBook Touch ID"):
    response = await client.post("/auth/webauthn/register/options", headers=auth_headers)
    assert response.status_code == 200
    challenge = response.json()["options"]["challenge"]

    response = await client.post(
        "/auth/webauthn/register/verify",
        headers=auth_headers,
        json={"credential": _credential("webauthn.create", challenge, raw_id), "device_name": name},
    )
    assert response.status_code == 200
    return response.json()


async def _login(client, email, raw_id=b"device-1"):
    response = await client.post("/auth/webauthn/authenticate/options", json={"email": email})
    assert response.status_code == 200
    body = response.json()

    return await client.post(
        "/auth/webauthn/authenticate/verify",
        json={
            "user_id": body["user_id"],
            "credential": _credential("webauthn.get", body["options"]["challenge"], raw_id),
        },
    )


@pytest.mark.integration
class TestHealth:
    """Health and root endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["checks"] == {"database": True, "redis": True}

    @pytest.mark.asyncio
    async def test_health_degraded_when_redis_down(self, app, client, unavailable_redis):
        async def broken_redis():
            return unavailable_redis

        app.dependency_overrides[get_redis] = broken_redis

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["checks"] == {"database": True, "redis": False}


@pytest.mark.integration
class TestDeviceFlow:
    """Register a device, log in with it, manage it."""

    @pytest.mark.asyncio
    async def test_register_and_login(self, client, auth_headers, user, stub_verifier):
        email = user.email

        registered = await _register(client, auth_headers)
        assert registered["verified"] is True
        assert registered["device_name"] == "MacBook Touch ID"
        assert registered["credential_id"] == bytes_to_base64url(b"device-1")

        response = await _login(client, email)

        assert response.status_code == 200
        body = response.json()
        assert body["mfa_required"] is False
        assert body["token_type"] == "bearer"
        assert body["access_token"]

    @pytest.mark.asyncio
    async def test_register_requires_authentication(self, client):
        response = await client.post("/auth/webauthn/register/options")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_without_devices(self, client, user):
        response = await client.post(
            "/auth/webauthn/authenticate/options", json={"email": user.email}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No registered devices"

    @pytest.mark.asyncio
    async def test_unknown_email_matches_no_devices(self, client):
        response = await client.post(
            "/auth/webauthn/authenticate/options", json={"email": "ghost@academy.example"}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No registered devices"

    @pytest.mark.asyncio
    async def test_options_request_needs_identifier(self, client):
        response = await client.post("/auth/webauthn/authenticate/options", json={})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_failed_verification_is_generic(self, client, auth_headers, user, stub_verifier):
        user_id = str(user.id)
        await _register(client, auth_headers)
        response = await client.post("/auth/webauthn/authenticate/options", json={"user_id": user_id})
        forged = bytes_to_base64url(b"f" * 32)

        response = await client.post(
            "/auth/webauthn/authenticate/verify",
            json={"user_id": user_id, "credential": _credential("webauthn.get", forged, b"device-1")},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Verification failed"

        events = await client.get("/auth/security-events", headers=auth_headers)
        failures = [e for e in events.json()["events"] if e["action"] == "device_login_failed"]
        assert [e["reason"] for e in failures] == ["challenge_mismatch"]

    @pytest.mark.asyncio
    async def test_list_and_revoke_devices(self, client, auth_headers, user, stub_verifier):
        email = user.email
        await _register(client, auth_headers)
        credential_id = bytes_to_base64url(b"device-1")

        response = await client.post(
            f"/auth/webauthn/devices/{credential_id}/revoke", headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json() == {"revoked": True, "credential_id": credential_id}

        response = await client.get("/auth/webauthn/devices", headers=auth_headers)
        devices = response.json()["devices"]
        assert response.json()["count"] == 1
        assert devices[0]["revoked"] is True
        assert devices[0]["device_type"] == "multi_device"
        assert devices[0]["backed_up"] is True

        response = await client.post("/auth/webauthn/authenticate/options", json={"email": email})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_revoke_unknown_device(self, client, auth_headers):
        response = await client.post(
            f"/auth/webauthn/devices/{bytes_to_base64url(b'nope')}/revoke", headers=auth_headers
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_redis_outage_returns_503(self, app, client, auth_headers, user, stub_verifier, unavailable_redis):
        email = user.email
        await _register(client, auth_headers)

        async def broken_redis():
            return unavailable_redis

        app.dependency_overrides[get_redis] = broken_redis

        response = await client.post("/auth/webauthn/authenticate/options", json={"email": email})

        assert response.status_code == 503
        assert response.headers["retry-after"]
        assert response.json()["error"] == "service_unavailable"


@pytest.mark.integration
class TestBackupCodeFlow:
    """Generate backup codes and log in with one."""

    @pytest.mark.asyncio
    async def test_generate_and_redeem(self, client, auth_headers, user):
        email = user.email

        response = await client.post("/auth/backup-codes", headers=auth_headers)
        assert response.status_code == 200
        codes = response.json()["codes"]
        assert len(codes) == 10

        response = await client.post(
            "/auth/backup-codes/redeem", json={"email": email, "code": codes[0]}
        )
        assert response.status_code == 200
        assert response.json()["access_token"]

        response = await client.post(
            "/auth/backup-codes/redeem", json={"email": email, "code": codes[0]}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Verification failed"

        response = await client.get("/auth/backup-codes/status", headers=auth_headers)
        assert response.json() == {"remaining": 9}


@pytest.mark.integration
class TestTwoFactorFlow:
    """Device login stepped up with an emailed code."""

    @pytest.mark.asyncio
    async def test_login_requires_emailed_code(
        self, client, auth_headers, user, stub_verifier, monkeypatch
    ):
        monkeypatch.setattr(
            "academy_auth.services.two_factor.generate_verification_code", lambda: "482913"
        )
        email = user.email
        await _register(client, auth_headers)

        response = await client.post("/auth/two-factor/enable", headers=auth_headers, json={})
        assert response.status_code == 200
        assert len(response.json()["backup_codes"]) == 10

        response = await _login(client, email)
        body = response.json()
        assert response.status_code == 200
        assert body["mfa_required"] is True
        assert body["access_token"] is None
        assert body["code_expires_at"]

        response = await client.post(
            "/auth/two-factor/login", json={"mfa_token": body["mfa_token"], "code": "000000"}
        )
        assert response.status_code == 401

        response = await client.post(
            "/auth/two-factor/login", json={"mfa_token": body["mfa_token"], "code": "482913"}
        )
        assert response.status_code == 200
        assert response.json()["access_token"]

    @pytest.mark.asyncio
    async def test_access_token_is_not_an_mfa_token(self, client, auth_headers):
        token = auth_headers["Authorization"].removeprefix("Bearer ")

        response = await client.post(
            "/auth/two-factor/login", json={"mfa_token": token, "code": "123456"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired MFA token"

    @pytest.mark.asyncio
    async def test_status_and_disable(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(
            "academy_auth.services.two_factor.generate_verification_code", lambda: "112233"
        )
        await client.post("/auth/two-factor/enable", headers=auth_headers, json={})

        response = await client.post("/auth/two-factor/code", headers=auth_headers)
        assert response.status_code == 200

        response = await client.post(
            "/auth/two-factor/disable", headers=auth_headers, json={"code": "112233"}
        )
        assert response.status_code == 200

        response = await client.get("/auth/two-factor/status", headers=auth_headers)
        assert response.json()["enabled"] is False
        assert response.json()["backup_codes_remaining"] == 10

    @pytest.mark.asyncio
    async def test_code_must_be_six_digits(self, client, auth_headers):
        response = await client.post(
            "/auth/two-factor/disable", headers=auth_headers, json={"code": "12ab56"}
        )

        assert response.status_code == 422


@pytest.mark.integration
class TestAppSettings:
    """Routes use the Settings the application was created with."""

    @pytest_asyncio.fixture
    async def configured_client(self, db_session, fake_redis, injected_settings):
        application = create_app(injected_settings)

        async def override_get_db():
            yield db_session
            await db_session.commit()

        async def override_get_redis():
            return fake_redis

        application.dependency_overrides[get_db] = override_get_db
        application.dependency_overrides[get_redis] = override_get_redis
        async with AsyncClient(
            transport=ASGITransport(app=application), base_url="http://test"
        ) as ac:
            yield ac

    @pytest.mark.asyncio
    async def test_tokens_are_checked_with_app_secret(
        self, configured_client, auth_headers, user, injected_settings
    ):
        response = await configured_client.get("/auth/backup-codes/status", headers=auth_headers)
        assert response.status_code == 401

        token = create_access_token(
            {"sub": str(user.id), "email": user.email}, settings=injected_settings
        )
        response = await configured_client.get(
            "/auth/backup-codes/status", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_backup_codes_hashed_with_app_secret(
        self, configured_client, db_session, user, injected_settings
    ):
        email = user.email
        token = create_access_token(
            {"sub": str(user.id), "email": email}, settings=injected_settings
        )

        response = await configured_client.post(
            "/auth/backup-codes", headers={"Authorization": f"Bearer {token}"}
        )
        codes = response.json()["codes"]

        stored = set((await db_session.execute(select(BackupCode.code_hash))).scalars().all())
        assert stored == {hash_code(code, injected_settings.secret_key) for code in codes}

        response = await configured_client.post(
            "/auth/backup-codes/redeem", json={"email": email, "code": codes[0]}
        )
        assert response.status_code == 200
        assert decode_token(response.json()["access_token"], settings=injected_settings)

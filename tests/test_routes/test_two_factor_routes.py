"""Tests for two-factor setup routes.

Setup and verify-setup persist nothing; enable stores the secret and
backup codes; disable clears them.
"""

import httpx
import pyotp
import pytest

from app.main import app
from app.routes import dependencies
from app.services.credential_service import CredentialService
from app.services.two_factor_service import TwoFactorService


@pytest.fixture(autouse=True)
def two_factor_service(encryption_env: str):
    app.dependency_overrides[dependencies.get_two_factor_service] = lambda: TwoFactorService(
        CredentialService()
    )


async def lookup(api_client: httpx.AsyncClient, email: str) -> dict:
    response = await api_client.post("/api/v1/auth/check-user", json={"email": email})
    return response.json()


class TestSetup:
    async def test_p0_requires_authentication(self, api_client: httpx.AsyncClient):
        response = await api_client.post("/api/v1/2fa/setup")

        assert response.status_code == 401

    async def test_p0_returns_material_without_persisting(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        response = await api_client.post("/api/v1/2fa/setup", headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["qrCodeUrl"].startswith("data:image/png;base64,")
        assert body["manualEntryKey"].replace(" ", "") == body["secret"]
        assert len(body["backupCodes"]) == 10
        assert (await lookup(api_client, "user@example.com"))["twoFactorEnabled"] is False


class TestVerifySetup:
    async def test_p0_current_code_accepted(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        secret = pyotp.random_base32()

        response = await api_client.post(
            "/api/v1/2fa/verify-setup",
            json={"secret": secret, "token": pyotp.TOTP(secret).now()},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["success"] is True

    async def test_p1_non_numeric_token_is_400(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        response = await api_client.post(
            "/api/v1/2fa/verify-setup",
            json={"secret": pyotp.random_base32(), "token": "12ab56"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("token")


class TestEnableDisable:
    async def test_p0_enable_then_disable(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        """[P0] Lookup reflects 2FA after enable and stops after disable."""
        # GIVEN: Setup material from the server
        setup = (await api_client.post("/api/v1/2fa/setup", headers=auth_headers)).json()

        # WHEN: 2FA is enabled with it
        enabled = await api_client.post(
            "/api/v1/2fa/enable",
            json={"secret": setup["secret"], "backupCodes": setup["backupCodes"]},
            headers=auth_headers,
        )

        # THEN: The account now requires 2FA
        assert enabled.status_code == 200
        assert (await lookup(api_client, "user@example.com"))["twoFactorEnabled"] is True

        disabled = await api_client.post("/api/v1/2fa/disable", headers=auth_headers)
        assert disabled.status_code == 200
        assert (await lookup(api_client, "user@example.com"))["twoFactorEnabled"] is False

    async def test_p1_malformed_backup_codes_rejected(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        response = await api_client.post(
            "/api/v1/2fa/enable",
            json={"secret": pyotp.random_base32(), "backupCodes": ["short"]},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert (await lookup(api_client, "user@example.com"))["twoFactorEnabled"] is False

"""Tests for profile routes."""

import httpx

from app.models import User


class TestGetProfile:
    async def test_p0_returns_current_user(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str], user: User
    ):
        response = await api_client.get("/api/v1/profile", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "id": str(user.id),
            "email": "user@example.com",
            "name": "Test User",
            "image": None,
            "phoneNumber": None,
            "role": "user",
            "twoFactorEnabled": False,
        }

    async def test_p0_unknown_token_is_401(self, api_client: httpx.AsyncClient):
        response = await api_client.get(
            "/api/v1/profile", headers={"Authorization": "Bearer not-a-session"}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Not authenticated"}


class TestUpdateProfile:
    async def test_p1_partial_update(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        response = await api_client.patch(
            "/api/v1/profile", json={"phoneNumber": "+1 555 0100"}, headers=auth_headers
        )

        body = response.json()
        assert response.status_code == 200
        assert body["phoneNumber"] == "+1 555 0100"
        assert body["name"] == "Test User"

    async def test_p1_invalid_phone_is_400(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str]
    ):
        response = await api_client.patch(
            "/api/v1/profile", json={"phoneNumber": "call me"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

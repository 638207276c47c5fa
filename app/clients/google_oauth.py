"""Google OAuth 2.0 client for sign-in and YouTube account linking.

Builds authorization URLs, exchanges authorization codes, refreshes access
tokens and reads the signed-in user's profile. Token endpoint failures are
classified: 400/401 means the grant is no longer usable (StaleCredentialsError),
anything else is a collaborator outage.

Usage:
    oauth = GoogleOAuthClient(client_id, client_secret)
    url = oauth.authorization_url(redirect_uri, scopes, state="...")
    tokens = await oauth.exchange_code(code, redirect_uri)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from app.exceptions import (
    CollaboratorUnavailableError,
    ConfigurationError,
    StaleCredentialsError,
)
from app.utils.logging import get_logger

log = get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SIGN_IN_SCOPES: tuple[str, ...] = ("openid", "email", "profile")


@dataclass
class OAuthTokens:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    scope: str | None = None


@dataclass
class GoogleUserInfo:
    subject: str
    email: str
    email_verified: bool
    name: str | None = None
    picture: str | None = None


class GoogleOAuthClient:
    """Google OAuth 2.0 web-server flow."""

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.client = http_client or httpx.AsyncClient(timeout=30.0)

    def _require_credentials(self) -> tuple[str, str]:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")
        return self.client_id, self.client_secret

    def authorization_url(
        self,
        redirect_uri: str,
        scopes: tuple[str, ...],
        state: str,
        offline: bool = False,
    ) -> str:
        """Build the consent screen URL.

        Args:
            redirect_uri: Callback URL registered with Google.
            scopes: OAuth scopes to request.
            state: Opaque value echoed back to the callback.
            offline: Request a refresh token (access_type=offline, prompt=consent).
        """
        client_id, _ = self._require_credentials()
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes),
            "response_type": "code",
            "state": state,
        }
        if offline:
            params["access_type"] = "offline"
            params["prompt"] = "consent"
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str]) -> OAuthTokens:
        client_id, client_secret = self._require_credentials()
        try:
            response = await self.client.post(
                TOKEN_URL,
                data={**data, "client_id": client_id, "client_secret": client_secret},
            )
        except httpx.HTTPError as e:
            log.error("google_token_transport_error", error=type(e).__name__)
            raise CollaboratorUnavailableError("google", "Token endpoint unreachable") from e

        if response.status_code in (400, 401):
            log.warning(
                "google_token_rejected",
                grant_type=data.get("grant_type"),
                status_code=response.status_code,
            )
            raise StaleCredentialsError("Google rejected the authorization grant")
        if response.status_code >= 400:
            raise CollaboratorUnavailableError(
                "google", "Token request failed", status_code=response.status_code
            )

        payload: dict[str, Any] = response.json()
        return OAuthTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=int(payload.get("expires_in", 3600))),
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Raises:
            StaleCredentialsError: If the code is invalid or already used.
            CollaboratorUnavailableError: On transport or server errors.
        """
        return await self._token_request(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        )

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """Obtain a new access token. The refresh token itself is usually not rotated."""
        tokens = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        if tokens.refresh_token is None:
            tokens.refresh_token = refresh_token
        return tokens

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """Read the OpenID Connect profile of the token's owner."""
        try:
            response = await self.client.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            raise CollaboratorUnavailableError("google", "Userinfo endpoint unreachable") from e
        if response.status_code == 401:
            raise StaleCredentialsError("Google access token rejected")
        if response.status_code >= 400:
            raise CollaboratorUnavailableError(
                "google", "Userinfo request failed", status_code=response.status_code
            )

        payload = response.json()
        return GoogleUserInfo(
            subject=str(payload["sub"]),
            email=payload["email"],
            email_verified=bool(payload.get("email_verified", False)),
            name=payload.get("name"),
            picture=payload.get("picture"),
        )

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()

"""Sign in with Google (OpenID Connect authorization-code flow).

A Google identity is linked to the existing user with the same email, or a
new user is created. Accounts that require two-factor sign-in are not
signed in by Google alone: the caller receives AuthenticationError and must
use the TOTP path.

State Binding:
    Every authorization URL carries a fresh random nonce, signed with a
    timestamp. The HTTP layer hands the same nonce to the browser in the
    GOOGLE_STATE_COOKIE cookie, and the callback is accepted only when the
    signed state is younger than STATE_MAX_AGE_SECONDS and its nonce
    matches that cookie.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.google_oauth import SIGN_IN_SCOPES, GoogleOAuthClient
from app.config import get_public_base_url
from app.exceptions import AuthenticationError
from app.models import utcnow
from app.services.credential_service import CredentialService
from app.utils.encryption import get_encryption_service
from app.utils.logging import get_logger

log = get_logger(__name__)

GOOGLE_PROVIDER = "google"
GOOGLE_STATE_COOKIE = "studio_google_state"
SIGN_IN_STATE_SALT = "google-sign-in-v1"
STATE_MAX_AGE_SECONDS = 600


def google_redirect_uri() -> str:
    return f"{get_public_base_url()}/api/v1/auth/google/callback"


def _state_serializer() -> URLSafeTimedSerializer:
    return get_encryption_service().state_serializer(SIGN_IN_STATE_SALT)


@dataclass(frozen=True)
class SignInChallenge:
    """Authorization URL plus the nonce the browser must present on callback."""

    auth_url: str
    nonce: str


def verify_state(state: str, nonce: str | None) -> None:
    """Check the signed state and that it was issued to this browser.

    Raises:
        AuthenticationError: If the state is forged, stale or belongs to another nonce.
    """
    try:
        expected = _state_serializer().loads(state, max_age=STATE_MAX_AGE_SECONDS)
    except SignatureExpired as e:
        raise AuthenticationError("OAuth state expired. Please sign in again.") from e
    except BadSignature as e:
        log.warning("google_state_signature_mismatch")
        raise AuthenticationError("Invalid OAuth state") from e

    if not nonce or not isinstance(expected, str) or not secrets.compare_digest(expected, nonce):
        log.warning("google_state_nonce_mismatch", has_cookie=bool(nonce))
        raise AuthenticationError("Invalid OAuth state")


class GoogleSignInService:
    def __init__(self, oauth: GoogleOAuthClient, credentials: CredentialService):
        self.oauth = oauth
        self.credentials = credentials

    def authorization_url(self) -> SignInChallenge:
        nonce = secrets.token_urlsafe(16)
        state = _state_serializer().dumps(nonce)
        url = self.oauth.authorization_url(google_redirect_uri(), SIGN_IN_SCOPES, state=state)
        return SignInChallenge(auth_url=url, nonce=nonce)

    async def complete(
        self, code: str, state: str, nonce: str | None, db: AsyncSession
    ) -> tuple[str, datetime]:
        """Exchange the callback code and mint a session.

        Raises:
            AuthenticationError: On a bad state, an unverified Google email, or an
                account that requires two-factor sign-in.
            StaleCredentialsError: If Google rejected the code.
        """
        verify_state(state, nonce)

        tokens = await self.oauth.exchange_code(code, google_redirect_uri())
        info = await self.oauth.get_user_info(tokens.access_token)
        if not info.email_verified:
            log.warning("google_sign_in_unverified_email", subject=info.subject)
            raise AuthenticationError("Google account email is not verified")

        user = await self.credentials.get_or_create_user(
            info.email, db, name=info.name, image=info.picture
        )
        if user.has_active_two_factor:
            log.warning("google_sign_in_requires_two_factor", user_id=str(user.id))
            raise AuthenticationError("Two-factor authentication is required for this account")

        await self.credentials.link_oauth_account(user, GOOGLE_PROVIDER, info.subject, db)
        if user.email_verified is None:
            user.email_verified = utcnow()
        if user.name is None and info.name:
            user.name = info.name
        if user.image is None and info.picture:
            user.image = info.picture

        log.info("google_sign_in_complete", user_id=str(user.id))
        return await self.credentials.create_session(user, db)

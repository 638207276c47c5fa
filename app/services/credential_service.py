"""Credential store: users, sessions and linked sign-in providers.

This service owns account lookup, user creation, server-side sessions and
profile updates. Every authenticated operation in the service layer takes
an explicit Principal resolved from the caller's bearer token.

Usage:
    from app.services.credential_service import CredentialService

    service = CredentialService()
    lookup = await service.lookup_account("user@example.com", db)
    token, expires_at = await service.create_session(user, db)
    principal = await service.resolve_session(token, db)

Security Notes:
    - Session tokens are returned once; only their SHA-256 hash is stored
    - Access events are logged with structlog (user_id, operation, success)
    - NEVER log tokens, secrets or full email addresses
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_session_max_age_days
from app.exceptions import AuthenticationError, NotFoundError
from app.models import AuthSession, OAuthAccount, User, as_utc, utcnow
from app.schemas.auth import LookupResponse
from app.schemas.profile import ProfileUpdate
from app.utils.encryption import hash_token
from app.utils.logging import mask_email

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, passed explicitly into every service call."""

    user_id: uuid.UUID
    email: str
    two_factor_enabled: bool = False


class CredentialService:
    """Service for user records, sessions and OAuth account links.

    Example:
        >>> service = CredentialService()
        >>> user = await service.get_or_create_user("user@example.com", db)
        >>> token, _ = await service.create_session(user, db)
    """

    async def get_user_by_email(self, email: str, db: AsyncSession) -> User | None:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: uuid.UUID, db: AsyncSession) -> User:
        """Get user by id.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def lookup_account(self, email: str, db: AsyncSession) -> LookupResponse:
        """Report whether an account exists and whether it requires 2FA.

        two_factor_enabled is reported True only when a TOTP secret is
        actually stored, so a half-configured account never strands the user.
        """
        user = await self.get_user_by_email(email, db)
        if user is None:
            log.info("account_lookup", email=mask_email(email), exists=False)
            return LookupResponse(exists=False, two_factor_enabled=False)

        log.info(
            "account_lookup",
            user_id=str(user.id),
            exists=True,
            two_factor_enabled=user.has_active_two_factor,
        )
        return LookupResponse(
            exists=True,
            two_factor_enabled=user.has_active_two_factor,
            user_id=user.id,
        )

    async def get_or_create_user(
        self,
        email: str,
        db: AsyncSession,
        name: str | None = None,
        image: str | None = None,
    ) -> User:
        """Return the user for email, creating one on first sign-in."""
        user = await self.get_user_by_email(email, db)
        if user is not None:
            return user

        user = User(email=email, name=name, image=image)
        db.add(user)
        await db.flush()
        log.info("user_created", user_id=str(user.id))
        return user

    async def create_session(self, user: User, db: AsyncSession) -> tuple[str, datetime]:
        """Mint a session for user.

        Returns:
            Tuple of (plaintext session token, expiry).
        """
        token = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(days=get_session_max_age_days())
        db.add(AuthSession(token_hash=hash_token(token), user_id=user.id, expires_at=expires_at))
        await db.commit()

        log.info("session_created", user_id=str(user.id), expires_at=expires_at.isoformat())
        return token, expires_at

    async def resolve_session(self, token: str, db: AsyncSession) -> Principal:
        """Resolve a bearer token to the Principal it belongs to.

        Raises:
            AuthenticationError: If the token is unknown or expired.
        """
        result = await db.execute(
            select(AuthSession, User)
            .join(User, AuthSession.user_id == User.id)
            .where(AuthSession.token_hash == hash_token(token))
        )
        row = result.first()
        if row is None:
            raise AuthenticationError("Not authenticated")

        session, user = row
        if as_utc(session.expires_at) <= utcnow():
            await db.delete(session)
            await db.commit()
            log.info("session_expired", user_id=str(user.id))
            raise AuthenticationError("Session expired")

        return Principal(
            user_id=user.id,
            email=user.email,
            two_factor_enabled=user.has_active_two_factor,
        )

    async def revoke_session(self, token: str, db: AsyncSession) -> None:
        await db.execute(delete(AuthSession).where(AuthSession.token_hash == hash_token(token)))
        await db.commit()
        log.info("session_revoked")

    async def link_oauth_account(
        self,
        user: User,
        provider: str,
        provider_account_id: str,
        db: AsyncSession,
    ) -> None:
        """Attach an external identity to user if not already linked."""
        result = await db.execute(
            select(OAuthAccount).where(
                OAuthAccount.provider == provider,
                OAuthAccount.provider_account_id == provider_account_id,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            if existing.user_id != user.id:
                log.warning(
                    "oauth_account_owned_by_other_user",
                    provider=provider,
                    user_id=str(user.id),
                )
                raise AuthenticationError("This account is linked to a different user")
            return

        db.add(
            OAuthAccount(
                user_id=user.id,
                provider=provider,
                provider_account_id=provider_account_id,
            )
        )
        await db.flush()
        log.info("oauth_account_linked", user_id=str(user.id), provider=provider)

    async def update_profile(
        self,
        principal: Principal,
        update: ProfileUpdate,
        db: AsyncSession,
    ) -> User:
        """Apply a partial profile update for the principal."""
        user = await self.get_user(principal.user_id, db)
        changes = update.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(user, field_name, value)
        await db.commit()

        log.info("profile_updated", user_id=str(user.id), fields=sorted(changes))
        return user

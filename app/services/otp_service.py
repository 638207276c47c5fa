"""Email one-time-password issuance and redemption.

Passwordless sign-in: a 6-digit numeric code is emailed to the address,
stored only as a hash with a short expiry, and exchanged for a session.

Key Responsibilities:
- Issue a fresh code, invalidating every earlier code for the address
- Refuse to issue codes for accounts that require two-factor sign-in
- Redeem a code exactly once, marking the email verified
- Never log the code itself

Usage:
    service = OTPService(CredentialService())
    await service.issue("user@example.com", db)
    token, expires_at = await service.consume("user@example.com", "123456", db)
"""

import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from urllib.parse import urlparse

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_otp_max_age_seconds, get_public_base_url
from app.constants import OTP_MAX_VALUE, OTP_MIN_VALUE
from app.exceptions import AuthenticationError
from app.models import TokenPurpose, VerificationToken, as_utc, utcnow
from app.services.credential_service import CredentialService
from app.utils.encryption import hash_token
from app.utils.logging import get_logger, mask_email
from app.utils.mailer import render_sign_in_email, send_email

log = get_logger(__name__)

EmailSender = Callable[[str, str, str, str], Awaitable[bool]]


def generate_otp() -> str:
    """Return a uniformly random code in [100000, 999999]."""
    return str(OTP_MIN_VALUE + secrets.randbelow(OTP_MAX_VALUE - OTP_MIN_VALUE + 1))


class OTPService:
    """Issues and redeems emailed sign-in codes.

    Attributes:
        credentials: Credential store used to create users and sessions.
        send: Coroutine (to, subject, html, text) delivering the email.
    """

    def __init__(self, credentials: CredentialService, send: EmailSender = send_email):
        self.credentials = credentials
        self.send = send

    async def issue(self, email: str, db: AsyncSession) -> datetime:
        """Issue and email a fresh code for email.

        Returns:
            Expiry of the new code.

        Raises:
            AuthenticationError: If the account requires two-factor sign-in.
            CollaboratorUnavailableError: If the email could not be sent.
        """
        email = email.strip().lower()
        user = await self.credentials.get_user_by_email(email, db)
        if user is not None and user.has_active_two_factor:
            log.warning("otp_refused_two_factor_account", user_id=str(user.id))
            raise AuthenticationError("Two-factor authentication is required for this account")

        code = generate_otp()
        max_age = get_otp_max_age_seconds()
        expires_at = utcnow() + timedelta(seconds=max_age)

        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.identifier == email,
                VerificationToken.purpose == TokenPurpose.EMAIL_OTP,
            )
        )
        db.add(
            VerificationToken(
                identifier=email,
                token_hash=hash_token(code),
                purpose=TokenPurpose.EMAIL_OTP,
                expires_at=expires_at,
            )
        )
        await db.commit()

        host = urlparse(get_public_base_url()).netloc or "Stream Studio"
        html, text = render_sign_in_email(code, host, max(1, max_age // 60))
        await self.send(email, f"Sign in to {host}", html, text)

        log.info("otp_issued", email=mask_email(email), expires_in_seconds=max_age)
        return expires_at

    async def consume(self, email: str, token: str, db: AsyncSession) -> tuple[str, datetime]:
        """Redeem a code and mint a session.

        Args:
            email: Address the code was sent to (case-insensitive).
            token: The 6-digit code.

        Returns:
            Tuple of (session token, session expiry).

        Raises:
            AuthenticationError: If the code is wrong, already used or expired.
        """
        email = email.strip().lower()
        result = await db.execute(
            select(VerificationToken).where(
                VerificationToken.identifier == email,
                VerificationToken.purpose == TokenPurpose.EMAIL_OTP,
                VerificationToken.token_hash == hash_token(token.strip()),
            )
        )
        challenge = result.scalar_one_or_none()
        if challenge is None:
            log.warning("otp_rejected", email=mask_email(email), reason="no_match")
            raise AuthenticationError("Invalid or expired code")

        await db.delete(challenge)
        if as_utc(challenge.expires_at) <= utcnow():
            await db.commit()
            log.warning("otp_rejected", email=mask_email(email), reason="expired")
            raise AuthenticationError("Invalid or expired code")

        user = await self.credentials.get_or_create_user(email, db)
        user.email_verified = utcnow()
        session_token, expires_at = await self.credentials.create_session(user, db)

        log.info("otp_consumed", user_id=str(user.id))
        return session_token, expires_at

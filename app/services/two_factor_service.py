"""TOTP two-factor authentication: setup, enablement and sign-in verification.

Key Responsibilities:
- Generate unpersisted setup material (secret, QR code, manual key, backup codes)
- Verify a code against an unconfirmed secret during setup
- Enable 2FA by persisting the encrypted secret and hashed backup codes atomically
- Disable 2FA, clearing the secret and every backup code
- Verify sign-in codes (TOTP or backup) and issue a single-use sign-in ticket
- Consume backup codes atomically so a code can never be redeemed twice

TOTP follows RFC 6238 via pyotp: 30 second step, 6 digits, one step of drift.

Note:
    TOTP and backup-code verification have no attempt cap, unlike emailed
    codes. Failures are logged with the user id for monitoring.
"""

import base64
import binascii
import secrets
from datetime import datetime, timedelta
from io import BytesIO

import pyotp
import qrcode
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.constants import (
    BACKUP_CODE_ALPHABET,
    BACKUP_CODE_COUNT,
    BACKUP_CODE_LENGTH,
    SIGN_IN_TICKET_TTL_SECONDS,
    TOTP_ISSUER,
    TOTP_VALID_WINDOW,
)
from app.exceptions import AuthenticationError, RequestValidationError
from app.models import BackupCode, TokenPurpose, User, VerificationToken, as_utc, utcnow
from app.schemas.auth import TwoFactorSetupResponse, TwoFactorVerifyResponse
from app.services.credential_service import CredentialService, Principal
from app.utils.codes import normalize_backup_code
from app.utils.encryption import get_encryption_service, hash_token
from app.utils.logging import get_logger

log = get_logger(__name__)


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    """Generate upper-case alphanumeric single-use backup codes."""
    return [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
        for _ in range(count)
    ]


def format_manual_entry_key(secret: str) -> str:
    """Group a base32 secret into blocks of four for manual entry."""
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


def render_qr_data_url(uri: str) -> str:
    """Render an otpauth:// URI as a PNG data URL."""
    image = qrcode.make(uri)
    buffer = BytesIO()
    image.save(buffer)
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def validate_secret(secret: str) -> None:
    """Raise RequestValidationError unless secret decodes as base32."""
    try:
        pyotp.TOTP(secret).byte_secret()
    except (binascii.Error, ValueError) as e:
        raise RequestValidationError("Invalid two-factor secret") from e


def verify_totp(secret: str, code: str) -> bool:
    """Check a 6-digit code against secret, allowing one step of clock drift.

    Raises:
        RequestValidationError: If secret is not valid base32.
    """
    try:
        return pyotp.TOTP(secret).verify(code.strip(), valid_window=TOTP_VALID_WINDOW)
    except (binascii.Error, ValueError) as e:
        raise RequestValidationError("Invalid two-factor secret") from e


class TwoFactorService:
    """Service for TOTP setup and two-factor sign-in.

    Example:
        >>> service = TwoFactorService(CredentialService())
        >>> setup = service.generate_setup(principal)
        >>> service.verify_setup(setup.secret, "123456")
        >>> await service.enable(principal, setup.secret, setup.backup_codes, db)
    """

    def __init__(self, credentials: CredentialService):
        self.credentials = credentials

    def generate_setup(self, principal: Principal) -> TwoFactorSetupResponse:
        """Create fresh setup material. Nothing is persisted."""
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(name=principal.email, issuer_name=TOTP_ISSUER)
        log.info("two_factor_setup_started", user_id=str(principal.user_id))
        return TwoFactorSetupResponse(
            secret=secret,
            qr_code_url=render_qr_data_url(uri),
            manual_entry_key=format_manual_entry_key(secret),
            backup_codes=generate_backup_codes(),
        )

    def verify_setup(self, secret: str, token: str) -> bool:
        """Verify a code against the unconfirmed secret shown during setup."""
        return verify_totp(secret, token)

    async def enable(
        self,
        principal: Principal,
        secret: str,
        backup_codes: list[str],
        db: AsyncSession,
    ) -> None:
        """Persist the secret and backup codes in one transaction.

        Raises:
            RequestValidationError: If the secret or any backup code is malformed.
        """
        validate_secret(secret)
        normalized = {normalize_backup_code(code) for code in backup_codes}
        if any(len(code) != BACKUP_CODE_LENGTH for code in normalized):
            raise RequestValidationError(
                f"Backup codes must be {BACKUP_CODE_LENGTH} alphanumeric characters"
            )

        user = await self.credentials.get_user(principal.user_id, db)
        user.enable_two_factor(get_encryption_service().encrypt(secret))
        await db.execute(delete(BackupCode).where(BackupCode.user_id == user.id))
        db.add_all(BackupCode(user_id=user.id, code_hash=hash_token(code)) for code in normalized)
        await db.commit()

        log.info("two_factor_enabled", user_id=str(user.id), backup_codes=len(normalized))

    async def disable(self, principal: Principal, db: AsyncSession) -> None:
        user = await self.credentials.get_user(principal.user_id, db)
        user.disable_two_factor()
        await db.execute(delete(BackupCode).where(BackupCode.user_id == user.id))
        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.identifier == user.email,
                VerificationToken.purpose == TokenPurpose.TWO_FACTOR_TICKET,
            )
        )
        await db.commit()
        log.info("two_factor_disabled", user_id=str(user.id))

    async def count_backup_codes(self, user_id, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count()).select_from(BackupCode).where(BackupCode.user_id == user_id)
        )
        return int(result.scalar_one())

    async def consume_backup_code(self, user: User, code: str, db: AsyncSession) -> bool:
        """Redeem a backup code exactly once.

        The delete is conditional on the code hash, so of two concurrent
        redemptions of the same code only one sees rowcount == 1.
        """
        normalized = normalize_backup_code(code)
        if len(normalized) != BACKUP_CODE_LENGTH:
            return False
        result = await db.execute(
            delete(BackupCode).where(
                BackupCode.user_id == user.id,
                BackupCode.code_hash == hash_token(normalized),
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def verify_login(
        self,
        email: str,
        code: str,
        is_backup_code: bool,
        db: AsyncSession,
    ) -> TwoFactorVerifyResponse:
        """Verify a sign-in TOTP or backup code.

        Returns:
            valid=False for unknown accounts, accounts without 2FA, and wrong
            codes. On success, a single-use sign-in ticket and, for backup
            codes, the number of codes left.
        """
        user = await self.credentials.get_user_by_email(email, db)
        if user is None or not user.has_active_two_factor:
            log.warning("two_factor_verify_rejected", reason="not_enrolled")
            return TwoFactorVerifyResponse(valid=False)

        remaining: int | None = None
        if is_backup_code:
            valid = await self.consume_backup_code(user, code, db)
            if valid:
                remaining = await self.count_backup_codes(user.id, db)
        else:
            secret = get_encryption_service().decrypt(
                user.two_factor_secret_encrypted, user_id=str(user.id)
            )
            valid = verify_totp(secret, code)

        if not valid:
            log.warning(
                "two_factor_verify_failed",
                user_id=str(user.id),
                method="backup_code" if is_backup_code else "totp",
            )
            return TwoFactorVerifyResponse(valid=False)

        ticket = await self._issue_ticket(user.email, db)
        log.info(
            "two_factor_verified",
            user_id=str(user.id),
            method="backup_code" if is_backup_code else "totp",
            remaining_backup_codes=remaining,
        )
        return TwoFactorVerifyResponse(
            valid=True,
            remaining_backup_codes=remaining,
            sign_in_ticket=ticket,
        )

    async def _issue_ticket(self, email: str, db: AsyncSession) -> str:
        ticket = secrets.token_urlsafe(32)
        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.identifier == email,
                VerificationToken.purpose == TokenPurpose.TWO_FACTOR_TICKET,
            )
        )
        db.add(
            VerificationToken(
                identifier=email,
                token_hash=hash_token(ticket),
                purpose=TokenPurpose.TWO_FACTOR_TICKET,
                expires_at=utcnow() + timedelta(seconds=SIGN_IN_TICKET_TTL_SECONDS),
            )
        )
        await db.commit()
        return ticket

    async def exchange_ticket(
        self,
        email: str,
        ticket: str,
        db: AsyncSession,
    ) -> tuple[str, datetime]:
        """Exchange a sign-in ticket for a session (final credential sign-in).

        Raises:
            AuthenticationError: If the ticket is unknown, used or expired.
        """
        email = email.strip().lower()
        result = await db.execute(
            select(VerificationToken).where(
                VerificationToken.identifier == email,
                VerificationToken.purpose == TokenPurpose.TWO_FACTOR_TICKET,
                VerificationToken.token_hash == hash_token(ticket),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise AuthenticationError("Invalid sign-in ticket")

        await db.delete(row)
        if as_utc(row.expires_at) <= utcnow():
            await db.commit()
            raise AuthenticationError("Sign-in ticket expired")

        user = await self.credentials.get_user_by_email(email, db)
        if user is None:
            await db.commit()
            raise AuthenticationError("Invalid sign-in ticket")

        return await self.credentials.create_session(user, db)

"""Pydantic schemas for sign-in, OTP and two-factor endpoints.

Schema Naming Convention:
    - *Request: request bodies
    - *Response: response bodies

All wire keys are camelCase (see CamelModel).
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import CamelModel


class EmailRequest(CamelModel):
    """Body carrying just an email address (lookup and OTP issuance)."""

    email: str = Field(..., max_length=320, examples=["user@example.com"])

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not value or "@" not in value:
            raise ValueError("A valid email address is required")
        return value


class LookupResponse(CamelModel):
    """Result of an account lookup.

    two_factor_enabled is True only when the account has 2FA on AND a stored secret.
    """

    exists: bool
    two_factor_enabled: bool = False
    user_id: UUID | None = None


class OTPConsumeResponse(CamelModel):
    success: bool = True
    session_token: str
    callback_url: str | None = None


class TwoFactorVerifyRequest(CamelModel):
    """Body for POST /api/v1/auth/2fa/verify.

    is_backup_code switches between TOTP and backup-code validation.
    """

    email: str = Field(..., max_length=320)
    code: str = Field(..., min_length=1, max_length=32)
    is_backup_code: bool = False


class TwoFactorVerifyResponse(CamelModel):
    valid: bool
    remaining_backup_codes: int | None = None
    sign_in_ticket: str | None = None


class SessionRequest(CamelModel):
    """Final credential sign-in: exchange a 2FA ticket for a session."""

    email: str = Field(..., max_length=320)
    ticket: str = Field(..., min_length=1)


class SessionResponse(CamelModel):
    session_token: str
    expires_at: datetime


class TwoFactorSetupResponse(CamelModel):
    """Fresh, unpersisted 2FA material shown during setup."""

    secret: str
    qr_code_url: str
    manual_entry_key: str
    backup_codes: list[str]


class TwoFactorSetupVerifyRequest(CamelModel):
    secret: str = Field(..., min_length=16, max_length=64)
    token: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class TwoFactorEnableRequest(CamelModel):
    secret: str = Field(..., min_length=16, max_length=64)
    backup_codes: list[str] = Field(..., min_length=1, max_length=20)


class GoogleAuthUrlResponse(CamelModel):
    auth_url: str

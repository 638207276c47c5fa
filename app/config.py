"""Configuration management for the studio service.

This module provides centralized configuration loading from environment variables.
Required values are cached after the first successful read.

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL (required for production)
    FERNET_KEY: Encryption key for TOTP secrets and OAuth tokens (required)
    DEEPGRAM_API_KEY: Deepgram key for transcription and captions (optional)
    GEMINI_API_KEY: Google Gemini key for video analysis (optional)
    S3_BUCKET_NAME / AWS_REGION: Object storage for uploads (optional)
    GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: Google OAuth sign-in and YouTube linking
    PUBLIC_BASE_URL: Externally visible base URL used in OAuth redirects and emails
    EMAIL_SERVER_HOST / EMAIL_SERVER_PORT / EMAIL_SERVER_USER /
    EMAIL_SERVER_PASSWORD / EMAIL_FROM: SMTP settings for sign-in codes
    OTP_MAX_AGE_SECONDS: Lifetime of an emailed sign-in code (default: 180)
    SESSION_MAX_AGE_DAYS: Lifetime of a session token (default: 30)
    LOOKUP_RATE_LIMIT_PER_MINUTE: Account lookups allowed per client (default: 10)

Usage:
    from app.config import get_database_url, get_deepgram_api_key

    db_url = get_database_url()  # Raises if DATABASE_URL not set
    api_key = get_deepgram_api_key()  # Returns None if not set
"""

import os
from dataclasses import dataclass
from functools import lru_cache

import structlog
from dotenv import load_dotenv

load_dotenv()

log = structlog.get_logger(__name__)


@lru_cache
def get_database_url() -> str:
    """Get database URL from environment.

    Converts postgresql:// to postgresql+asyncpg:// for async SQLAlchemy.

    Environment Variable:
        DATABASE_URL: PostgreSQL connection URL

    Returns:
        Database URL with asyncpg driver.

    Raises:
        ValueError: If DATABASE_URL not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


@lru_cache
def get_fernet_key() -> str:
    """Get Fernet encryption key from environment.

    Environment Variable:
        FERNET_KEY: Base64-encoded Fernet key for credential encryption

    Returns:
        Fernet key string.

    Raises:
        ValueError: If FERNET_KEY not set.
    """
    key = os.getenv("FERNET_KEY")
    if not key:
        raise ValueError("FERNET_KEY environment variable is required")
    return key


def get_deepgram_api_key() -> str | None:
    """Get Deepgram API key from environment.

    Returns:
        API key string, or None if not set.
    """
    return os.getenv("DEEPGRAM_API_KEY")


def get_gemini_api_key() -> str | None:
    """Get Google Gemini API key from environment.

    Returns:
        API key string, or None if not set.
    """
    return os.getenv("GEMINI_API_KEY")


def get_s3_bucket_name() -> str | None:
    """Get S3 bucket name used for uploads, transcripts, subtitles and thumbnails."""
    return os.getenv("S3_BUCKET_NAME")


def get_aws_region() -> str:
    """Get AWS region for the S3 client (default: "us-east-1")."""
    return os.getenv("AWS_REGION", "us-east-1")


def get_google_client_id() -> str | None:
    return os.getenv("GOOGLE_CLIENT_ID")


def get_google_client_secret() -> str | None:
    return os.getenv("GOOGLE_CLIENT_SECRET")


def get_public_base_url() -> str:
    """Get the externally visible base URL of the service.

    Environment Variable:
        PUBLIC_BASE_URL: e.g. "https://studio.example.com" (default: "http://localhost:8000")

    Returns:
        Base URL without a trailing slash.
    """
    return os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")


@dataclass(frozen=True)
class SMTPSettings:
    """SMTP connection settings for outgoing sign-in emails."""

    host: str
    port: int
    username: str | None
    password: str | None
    sender: str


def get_smtp_settings() -> SMTPSettings | None:
    """Get SMTP settings from environment.

    Environment Variables:
        EMAIL_SERVER_HOST: SMTP host (required to enable email delivery)
        EMAIL_SERVER_PORT: SMTP port (default: 587)
        EMAIL_SERVER_USER / EMAIL_SERVER_PASSWORD: Optional login credentials
        EMAIL_FROM: Sender address (default: "no-reply@localhost")

    Returns:
        SMTPSettings, or None if EMAIL_SERVER_HOST is not set.
    """
    host = os.getenv("EMAIL_SERVER_HOST")
    if not host:
        return None
    return SMTPSettings(
        host=host,
        port=_get_int("EMAIL_SERVER_PORT", default=587, minimum=1, maximum=65535),
        username=os.getenv("EMAIL_SERVER_USER"),
        password=os.getenv("EMAIL_SERVER_PASSWORD"),
        sender=os.getenv("EMAIL_FROM", "no-reply@localhost"),
    )


def get_otp_max_age_seconds() -> int:
    """Get lifetime of an emailed sign-in code in seconds (default: 180, range 30-3600)."""
    return _get_int("OTP_MAX_AGE_SECONDS", default=180, minimum=30, maximum=3600)


def get_session_max_age_days() -> int:
    """Get session token lifetime in days (default: 30, range 1-365)."""
    return _get_int("SESSION_MAX_AGE_DAYS", default=30, minimum=1, maximum=365)


def get_lookup_rate_limit_per_minute() -> int:
    """Get the number of account lookups allowed per client per minute.

    Environment Variable:
        LOOKUP_RATE_LIMIT_PER_MINUTE: Integer 1-120 (default: 10)

    Returns:
        Requests per minute, clamped to the valid range.
    """
    return _get_int("LOOKUP_RATE_LIMIT_PER_MINUTE", default=10, minimum=1, maximum=120)


def get_log_level() -> str:
    """Get log level name (default: "INFO")."""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def _get_int(name: str, default: int, minimum: int, maximum: int) -> int:
    """Read an integer environment variable, clamped to [minimum, maximum].

    Invalid values fall back to the default with a warning.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning("invalid_config_value", name=name, value=raw, default=default)
        return default
    if value < minimum or value > maximum:
        clamped = max(minimum, min(value, maximum))
        log.warning("config_value_clamped", name=name, value=value, clamped=clamped)
        return clamped
    return value

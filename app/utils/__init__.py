"""Cross-cutting utilities shared by services, clients and routes.

This package contains helper functions and services used across multiple
modules. Utilities should be pure functions or singletons without business
logic.

Modules:
    encryption: Fernet encryption for TOTP secrets and OAuth tokens, token hashing.
    codes: OTP and backup-code generation and normalization.
    captions: WebVTT/SRT rendering from transcript utterances.
    cli_wrapper: async subprocess runner for ffmpeg/ffprobe.
    mailer: SMTP delivery of sign-in codes.
    rate_limit: per-key token-bucket limiter.
    logging: JSON structured logging setup.
"""

from app.utils.encryption import (
    DecryptionError,
    EncryptionKeyMissing,
    EncryptionService,
    get_encryption_service,
)

__all__ = [
    "DecryptionError",
    "EncryptionKeyMissing",
    "EncryptionService",
    "get_encryption_service",
]

"""Fernet symmetric encryption for TOTP secrets and OAuth tokens.

This module provides encryption and decryption of sensitive credentials
using Fernet symmetric encryption from the cryptography library, plus
one-way hashing for values that only ever need to be compared (session
tokens, sign-in codes, backup codes), and itsdangerous serializers for
signed OAuth state.

The FERNET_KEY environment variable must be set with a valid Fernet key
generated via `Fernet.generate_key()`.

Usage:
    from app.utils.encryption import get_encryption_service, hash_token

    service = get_encryption_service()
    encrypted = service.encrypt("JBSWY3DPEHPK3PXP")
    decrypted = service.decrypt(encrypted, user_id=str(user.id))

    token_hash = hash_token(session_token)
    state = service.state_serializer("youtube-connect-v1").dumps({"uid": str(user.id)})

Security Notes:
    - NEVER log or expose encrypted values or plaintext secrets
    - Key rotation requires re-encrypting all stored credentials
"""

import hashlib
import os
from typing import ClassVar

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import URLSafeTimedSerializer


class EncryptionKeyMissing(Exception):
    """Raised when FERNET_KEY environment variable is not set or invalid."""

    pass


class DecryptionError(Exception):
    """Raised when decryption fails due to invalid key or corrupted data.

    This exception provides context about the failure without exposing
    sensitive ciphertext data.

    Attributes:
        user_id: The user ID owning the failed credential (if available).
            Useful for debugging without exposing secrets.
    """

    def __init__(self, message: str, user_id: str | None = None) -> None:
        self.user_id = user_id
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with user context if available."""
        if self.user_id:
            return f"{super().__str__()} (user_id={self.user_id})"
        return super().__str__()


class EncryptionService:
    """Fernet symmetric encryption service for credential storage.

    Singleton with lazy initialization so the encryption key is loaded
    only once per process.

    Example:
        >>> service = get_encryption_service()
        >>> encrypted = service.encrypt("ya29.a0...")
        >>> service.decrypt(encrypted)
        'ya29.a0...'

    Raises:
        EncryptionKeyMissing: If FERNET_KEY environment variable is not set.
    """

    _instance: ClassVar["EncryptionService | None"] = None
    _cipher: Fernet
    _signing_key: bytes

    def __new__(cls) -> "EncryptionService":
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._initialize()
            cls._instance = instance
        return cls._instance

    def _initialize(self) -> None:
        """Initialize Fernet cipher with key from environment.

        Raises:
            EncryptionKeyMissing: If FERNET_KEY is not set or has an invalid format.
        """
        key = os.environ.get("FERNET_KEY")
        if not key:
            raise EncryptionKeyMissing(
                "FERNET_KEY environment variable is required. "
                "Generate a key using: Fernet.generate_key()"
            )
        try:
            self._cipher = Fernet(key.encode())
        except ValueError as e:
            raise EncryptionKeyMissing(
                "Invalid FERNET_KEY format: Fernet key must be 32 url-safe "
                "base64-encoded bytes."
            ) from e
        self._signing_key = hashlib.sha256(b"state-signing:" + key.encode()).digest()

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt plaintext string to bytes suitable for database storage."""
        return self._cipher.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes, user_id: str | None = None) -> str:
        """Decrypt ciphertext bytes to plaintext string.

        Args:
            ciphertext: The encrypted bytes from database storage.
            user_id: Optional owning user ID for error context.

        Returns:
            Decrypted plaintext string.

        Raises:
            DecryptionError: If decryption fails (invalid key or corrupted data).
        """
        try:
            return self._cipher.decrypt(ciphertext).decode()
        except InvalidToken as e:
            raise DecryptionError(
                "Decryption failed: invalid encryption key or corrupted data",
                user_id=user_id,
            ) from e
        except (TypeError, ValueError, UnicodeDecodeError) as e:
            raise DecryptionError(
                f"Decryption failed: {type(e).__name__}",
                user_id=user_id,
            ) from e

    def state_serializer(self, salt: str) -> URLSafeTimedSerializer:
        """Timed URL-safe signer for OAuth state parameters, keyed from FERNET_KEY.

        Tokens from one salt never load under another.
        """
        return URLSafeTimedSerializer(self._signing_key, salt=salt)

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (for testing only)."""
        cls._instance = None


def get_encryption_service() -> EncryptionService:
    """Get the singleton EncryptionService instance.

    Raises:
        EncryptionKeyMissing: If FERNET_KEY environment variable is not set.
    """
    return EncryptionService()


def hash_token(value: str) -> str:
    """One-way SHA-256 hex digest for tokens that are only compared, never read back."""
    return hashlib.sha256(value.encode()).hexdigest()

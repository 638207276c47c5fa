"""Normalization and display helpers for one-time codes.

Shared by the server (hashing and comparing backup codes) and the client
package (formatting what the user types).
"""

import re

from app.constants import BACKUP_CODE_LENGTH, OTP_LENGTH

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_WHITESPACE = re.compile(r"\s+")


def normalize_backup_code(raw: str) -> str:
    """Strip non-alphanumerics and upper-case.

    Example:
        >>> normalize_backup_code("ab12-cd34")
        'AB12CD34'
    """
    return _NON_ALNUM.sub("", raw).upper()


def format_backup_code(raw: str) -> str:
    """Format backup code input for display as two blocks of four.

    Input is upper-cased, non-alphanumerics are dropped and anything past
    BACKUP_CODE_LENGTH significant characters is cut off, so the result is
    at most 9 characters including the separating space.

    Example:
        >>> format_backup_code("ab12cd34")
        'AB12 CD34'
        >>> format_backup_code("ab1")
        'AB1'
    """
    cleaned = normalize_backup_code(raw)[:BACKUP_CODE_LENGTH]
    half = BACKUP_CODE_LENGTH // 2
    if len(cleaned) <= half:
        return cleaned
    return f"{cleaned[:half]} {cleaned[half:]}"


def clean_otp_paste(raw: str) -> str | None:
    """Return the pasted emailed code if it is six digits once hyphens are removed."""
    cleaned = raw.replace("-", "").strip()
    if len(cleaned) == OTP_LENGTH and cleaned.isdigit():
        return cleaned
    return None


def clean_totp_paste(raw: str) -> str | None:
    """Return the pasted authenticator code if it is six digits once whitespace is removed."""
    cleaned = _WHITESPACE.sub("", raw)
    if len(cleaned) == OTP_LENGTH and cleaned.isdigit():
        return cleaned
    return None

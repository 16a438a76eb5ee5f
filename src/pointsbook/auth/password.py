"""
Password hashing and validation using argon2id.

Only the hash is ever stored; plaintext passwords never reach the database.
"""

from __future__ import annotations

import argon2

from pointsbook.config import get_settings
from pointsbook.ledger.errors import InvalidInput

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,  # argon2id
)

MAX_PASSWORD_LENGTH = 128


class PasswordStrengthError(InvalidInput):
    """Raised when a password does not meet length requirements."""


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full hash string."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify a password against its argon2id hash.

    Returns True if the password matches. Never raises on mismatch or on
    accounts without a local password.
    """
    if not password_hash:
        return False
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def check_needs_rehash(password_hash: str) -> bool:
    """Check if the hash needs to be updated (parameters changed)."""
    return _hasher.check_needs_rehash(password_hash)


def validate_password(password: str | None) -> str:
    """
    Validate and normalize a password. Returns the stripped password.

    Raises PasswordStrengthError if it is blank, shorter than the configured
    minimum, or longer than 128 characters.
    """
    value = (password or "").strip()
    min_length = get_settings().password_min_length
    if not value:
        msg = "Password cannot be empty"
        raise PasswordStrengthError(msg)
    if len(value) < min_length:
        msg = f"Password must be at least {min_length} characters"
        raise PasswordStrengthError(msg, min_length=min_length)
    if len(value) > MAX_PASSWORD_LENGTH:
        msg = f"Password must not exceed {MAX_PASSWORD_LENGTH} characters"
        raise PasswordStrengthError(msg, max_length=MAX_PASSWORD_LENGTH)
    return value

"""Security helpers (hashing, verification and one-time keys)."""

from __future__ import annotations

import secrets

from argon2 import PasswordHasher, exceptions as argon_exc

_ph = PasswordHasher()
_PREFIX = "argon2$"


def hash_password(password: str) -> str:
    """Create an Argon2 hash with a prefix for detection."""
    hashed = _ph.hash(password)
    return f"{_PREFIX}{hashed}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    stored = stored_hash or ""
    if not stored.startswith(_PREFIX):
        return False
    try:
        return _ph.verify(stored[len(_PREFIX) :], password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False


def new_activation_key() -> str:
    """128 random bits, hex encoded (32 chars)."""
    return secrets.token_hex(16)


def keys_match(stored: str | None, supplied: str | None) -> bool:
    """Exact, constant-time comparison. Empty values never match."""
    if not stored or not supplied:
        return False
    return secrets.compare_digest(stored.encode(), supplied.encode())

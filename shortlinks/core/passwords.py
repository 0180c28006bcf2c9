"""
Link Password Hashing

Stored passwords are bcrypt hashes. The cost factor comes from
PASSWORD_BCRYPT_ROUNDS and is embedded in each hash, so raising it only
affects passwords set afterwards.

bcrypt reads at most 72 bytes of input; longer passwords are truncated
before hashing and verifying so both sides see the same bytes.
"""

from typing import Optional

import bcrypt

from shortlinks.core.setting import settings

BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Return the storable form of a link password."""
    salt = bcrypt.gensalt(rounds=rounds or settings.PASSWORD_BCRYPT_ROUNDS)
    return bcrypt.hashpw(_secret(password), salt).decode("ascii")


def verify_password(password: Optional[str], stored: Optional[str]) -> bool:
    """Check a supplied password against its stored hash."""
    if not password or not stored:
        return False
    try:
        return bcrypt.checkpw(_secret(password), stored.encode("ascii"))
    except ValueError:
        # not a bcrypt hash
        return False

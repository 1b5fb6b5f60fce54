"""Password hashing utilities.

bcrypt with a configurable work factor (12 in production, lower in
tests). bcrypt only looks at the first 72 bytes, so longer passwords
are truncated explicitly rather than rejected.
"""

from typing import Optional

import bcrypt

from ecovale_hr.config import settings

MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with bcrypt. The salt is embedded in the result."""
    pw_bytes = password.encode("utf-8")[:MAX_PASSWORD_BYTES]
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a bcrypt hash. Malformed hashes never match."""
    if not password_hash:
        return False
    try:
        pw_bytes = password.encode("utf-8")[:MAX_PASSWORD_BYTES]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False

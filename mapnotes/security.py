"""Password hashing helpers."""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 10


def get_password_hash(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return ``True`` when *plain_password* matches the stored bcrypt hash.

    Malformed hashes are treated as a mismatch rather than an error so a
    damaged user record can never authenticate.
    """

    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False

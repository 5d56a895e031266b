"""bcrypt password hashing helpers."""

from __future__ import annotations

from functools import lru_cache

import bcrypt

# bcrypt only consumes the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72

DEFAULT_ROUNDS = 10


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash; every call draws a fresh salt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Check ``plain`` against a stored bcrypt hash.

    Returns ``False`` instead of raising when bcrypt rejects the input
    (oversized password, malformed hash).
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    return hash_password("dummy-password", rounds)


def burn_verification(plain: str, rounds: int = DEFAULT_ROUNDS) -> None:
    """Run a throwaway comparison so unknown emails cost the same as wrong passwords."""
    verify_password(plain, _dummy_hash(rounds))


def exceeds_bcrypt_limit(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES

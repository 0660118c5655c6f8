"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a password longer than 72 bytes, which bcrypt 4.x
rejects. Direct usage has no compatibility shim to maintain.

bcrypt never sees more than 72 bytes of a password. Rather than let a longer
password be silently truncated (two passwords sharing a 72-byte prefix would
then match), hash() rejects it with ValueError.

checkpw compares digests in constant time, so verify() does not leak where a
mismatch occurs. Plaintext passwords are never logged.
"""

from __future__ import annotations

import bcrypt

from core.config import AuthConfig

MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted bcrypt hashing with a fixed cost factor from AuthConfig."""

    def __init__(self, config: AuthConfig) -> None:
        self._rounds = config.bcrypt_rounds
        # Timing equalization [C1]: computed once so verify_dummy() costs the
        # same as a real check against a stored hash.
        self._dummy_hash = self.hash("idgate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext. A new salt is drawn on every call."""
        encoded = plain.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the bcrypt hash.

        A malformed stored hash, or an over-long candidate, is a mismatch.
        """
        encoded = plain.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt check for a login that has no hash to compare against."""
        self.verify(plain, self._dummy_hash)

"""
Password hashing - salted bcrypt with a separately stored salt.

The salt is the 22-character bcrypt salt body, persisted next to the
hash so the hash can be recomputed from (plaintext, salt) alone.
Verification recomputes and compares in constant time.

The cost factor is fixed at 12 and is not read from Settings.
"""

import hmac

import bcrypt

from .exceptions import ValidationError
from .ports import PasswordHash

BCRYPT_ROUNDS = 12
MAX_PASSWORD_BYTES = 72  # bcrypt ignores (or rejects) anything past this

_SALT_PREFIX = f"$2b${BCRYPT_ROUNDS:02d}$"

# Pre-computed (hash, salt) used to keep unknown-account checks as slow as real ones.
_DUMMY_SALT = bcrypt.gensalt(rounds=BCRYPT_ROUNDS).decode()[len(_SALT_PREFIX) :]
_DUMMY_HASH = bcrypt.hashpw(
    b"dummy_password_for_timing_safety", (_SALT_PREFIX + _DUMMY_SALT).encode()
).decode()


class PasswordHasher:
    """Deterministic salted one-way hashing and verification."""

    def hash_password(self, plaintext: str) -> PasswordHash:
        """
        Hash a password with a freshly generated salt.

        Raises:
            ValidationError: If the password is empty or longer than 72 bytes
        """
        self.validate(plaintext)
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS).decode()[len(_SALT_PREFIX) :]
        return PasswordHash(hash=self._compute(plaintext, salt), salt=salt)

    def verify_password(self, plaintext: str, password_hash: str, salt: str) -> bool:
        """Recompute the hash from plaintext and stored salt, compare in constant time."""
        if len(plaintext.encode()) > MAX_PASSWORD_BYTES:
            return False
        try:
            computed = self._compute(plaintext, salt)
        except ValueError:
            # Malformed stored salt never matches
            return False
        return hmac.compare_digest(computed.encode(), password_hash.encode())

    def burn(self, plaintext: str) -> None:
        """Spend one verification's worth of time against a dummy hash."""
        self.verify_password(plaintext, _DUMMY_HASH, _DUMMY_SALT)

    def _compute(self, plaintext: str, salt: str) -> str:
        return bcrypt.hashpw(plaintext.encode(), (_SALT_PREFIX + salt).encode()).decode()

    def validate(self, plaintext: str) -> None:
        """Raises ValidationError for empty or over-long passwords."""
        if not plaintext:
            raise ValidationError("password is required")
        if len(plaintext.encode()) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")

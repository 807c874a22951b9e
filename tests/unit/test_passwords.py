"""
Unit tests for PasswordHasher.

Tests verify:
- Hash/verify roundtrip with a separately stored salt
- Altered plaintext or salt never verifies
- Fixed bcrypt cost factor
- Input validation (empty, over 72 bytes)
"""

import re

import pytest

from src.domain.exceptions import ValidationError
from src.domain.passwords import BCRYPT_ROUNDS, PasswordHasher


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher()


class TestHashPassword:
    """Tests for hash_password."""

    def test_hash_is_not_plaintext(self, hasher: PasswordHasher) -> None:
        """Stored hash never equals the password."""
        result = hasher.hash_password("secret-pass")
        assert result.hash != "secret-pass"
        assert "secret-pass" not in result.hash

    def test_hash_is_bcrypt_with_fixed_cost(self, hasher: PasswordHasher) -> None:
        """Hash is bcrypt with the fixed cost factor of 12."""
        result = hasher.hash_password("secret-pass")
        assert re.match(r"^\$2b\$12\$", result.hash)
        assert BCRYPT_ROUNDS == 12

    def test_salt_is_22_characters(self, hasher: PasswordHasher) -> None:
        """Salt is the 22-character bcrypt salt body."""
        result = hasher.hash_password("secret-pass")
        assert len(result.salt) == 22
        assert result.salt in result.hash

    def test_salt_is_fresh_per_password(self, hasher: PasswordHasher) -> None:
        """Same password twice gets different salts and hashes."""
        first = hasher.hash_password("secret-pass")
        second = hasher.hash_password("secret-pass")
        assert first.salt != second.salt
        assert first.hash != second.hash

    def test_empty_password_rejected(self, hasher: PasswordHasher) -> None:
        with pytest.raises(ValidationError):
            hasher.hash_password("")

    def test_password_over_72_bytes_rejected(self, hasher: PasswordHasher) -> None:
        """bcrypt only sees 72 bytes, so longer input is refused."""
        with pytest.raises(ValidationError):
            hasher.hash_password("x" * 73)

    def test_multibyte_length_counted_in_bytes(self, hasher: PasswordHasher) -> None:
        """37 two-byte characters exceed the limit even though len() is 37."""
        with pytest.raises(ValidationError):
            hasher.hash_password("é" * 37)


class TestVerifyPassword:
    """Tests for verify_password."""

    def test_roundtrip_verifies(self, hasher: PasswordHasher) -> None:
        result = hasher.hash_password("secret-pass")
        assert hasher.verify_password("secret-pass", result.hash, result.salt) is True

    def test_altered_plaintext_fails(self, hasher: PasswordHasher) -> None:
        result = hasher.hash_password("secret-pass")
        assert hasher.verify_password("secret-pasS", result.hash, result.salt) is False
        assert hasher.verify_password("", result.hash, result.salt) is False

    def test_altered_salt_fails(self, hasher: PasswordHasher) -> None:
        result = hasher.hash_password("secret-pass")
        replacement = "A" if result.salt[0] != "A" else "B"
        altered = replacement + result.salt[1:]
        assert hasher.verify_password("secret-pass", result.hash, altered) is False

    def test_other_users_salt_fails(self, hasher: PasswordHasher) -> None:
        first = hasher.hash_password("secret-pass")
        second = hasher.hash_password("secret-pass")
        assert hasher.verify_password("secret-pass", first.hash, second.salt) is False

    def test_malformed_salt_fails_without_raising(self, hasher: PasswordHasher) -> None:
        result = hasher.hash_password("secret-pass")
        assert hasher.verify_password("secret-pass", result.hash, "not-a-salt") is False

    def test_over_long_password_fails_without_raising(self, hasher: PasswordHasher) -> None:
        result = hasher.hash_password("secret-pass")
        assert hasher.verify_password("x" * 100, result.hash, result.salt) is False

    def test_deterministic_given_salt(self, hasher: PasswordHasher) -> None:
        """Recomputing with the stored salt reproduces the stored hash."""
        result = hasher.hash_password("secret-pass")
        assert hasher._compute("secret-pass", result.salt) == result.hash


class TestBurn:
    def test_burn_returns_none(self, hasher: PasswordHasher) -> None:
        """Dummy verification has no observable result."""
        assert hasher.burn("anything") is None

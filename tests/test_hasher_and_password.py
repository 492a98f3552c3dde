"""Unit tests for secret hashing and password/PIN format rules."""

import pytest

from common.auth import hash_secret, verify_secret
from common.utils import is_valid_pin, validate_password


class TestHasher:
    def test_verifies_the_original_secret(self):
        hashed = hash_secret("1234", rounds=4)

        assert verify_secret("1234", hashed) is True
        assert verify_secret("4321", hashed) is False

    def test_same_secret_hashes_differently(self):
        assert hash_secret("1234", rounds=4) != hash_secret("1234", rounds=4)

    def test_long_secrets_are_not_truncated(self):
        base = "x" * 80
        hashed = hash_secret(base + "a", rounds=4)

        assert verify_secret(base + "b", hashed) is False

    @pytest.mark.parametrize("hashed", [None, "", "not-a-bcrypt-hash"])
    def test_missing_or_corrupt_hash_is_false(self, hashed):
        assert verify_secret("1234", hashed) is False


class TestValidatePassword:
    def test_strong_password_passes(self):
        assert validate_password("StrongP@ss123") == (True, [])

    def test_reports_every_missing_class(self):
        is_valid, errors = validate_password("short")

        assert is_valid is False
        assert any("8 characters" in e for e in errors)
        assert any("uppercase" in e for e in errors)
        assert any("digit" in e for e in errors)
        assert any("special" in e for e in errors)


class TestIsValidPin:
    @pytest.mark.parametrize("pin", ["1234", "12345", "123456"])
    def test_accepts_four_to_six_digits(self, pin):
        assert is_valid_pin(pin) is True

    @pytest.mark.parametrize("pin", ["123", "1234567", "12a4", "", " 1234", None])
    def test_rejects_everything_else(self, pin):
        assert is_valid_pin(pin) is False

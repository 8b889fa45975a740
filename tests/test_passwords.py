"""
Test Suite: Password Policy & Hashing
=====================================
"""

import pytest

from turnstile.auth.passwords import (
    CredentialHasher,
    check_password_strength,
    validate_password_strength,
)
from turnstile_core.exceptions import WeakPasswordError


class TestStrengthPolicy:
    @pytest.mark.parametrize("password", ["Str0ngPassw0rd", "Abcdefg1", "N3wer-Passw0rd"])
    def test_accepts(self, password):
        assert check_password_strength(password) == (True, None)

    def test_too_short(self):
        ok, message = check_password_strength("Ab1")
        assert ok is False
        assert message == "Password must be at least 8 characters long"

    @pytest.mark.parametrize("password", ["alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_missing_character_class(self, password):
        ok, message = check_password_strength(password)
        assert ok is False
        assert message == "Password must contain uppercase, lowercase, and numbers"

    def test_validate_raises(self):
        with pytest.raises(WeakPasswordError) as exc:
            validate_password_strength("short")
        assert "8 characters" in exc.value.message


class TestCredentialHasher:
    @pytest.fixture
    def hasher(self, security_settings):
        return CredentialHasher(security_settings)

    @pytest.mark.asyncio
    async def test_hash_and_verify(self, hasher):
        hashed = await hasher.hash("Str0ngPassw0rd")

        assert hashed.startswith("$2")
        assert hashed != "Str0ngPassw0rd"
        assert await hasher.verify("Str0ngPassw0rd", hashed) is True
        assert await hasher.verify("Wr0ngPassw0rd", hashed) is False

    @pytest.mark.asyncio
    async def test_hashes_are_salted(self, hasher):
        assert await hasher.hash("Str0ngPassw0rd") != await hasher.hash("Str0ngPassw0rd")

    def test_verify_malformed_hash_is_false(self, hasher):
        assert hasher.verify_sync("Str0ngPassw0rd", "") is False
        assert hasher.verify_sync("Str0ngPassw0rd", "not-a-bcrypt-hash") is False

    def test_needs_rehash_when_cost_raised(self, hasher, security_settings):
        old_hash = hasher.hash_sync("Str0ngPassw0rd")
        stronger = CredentialHasher(security_settings.model_copy(update={"bcrypt_rounds": 5}))

        assert hasher.needs_rehash(old_hash) is False
        assert stronger.needs_rehash(old_hash) is True
        assert stronger.verify_sync("Str0ngPassw0rd", old_hash) is True

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Credential Hasher

Password hashing and verification with bcrypt (passlib). The cost factor
comes from SecuritySettings.bcrypt_rounds; 12 rounds costs roughly
150-250ms per hash on commodity hardware. Hashing runs in a worker
thread so the event loop keeps serving other requests meanwhile.
"""

import asyncio
import logging
import re

from passlib.context import CryptContext

from turnstile_core.exceptions import WeakPasswordError

from ..core.settings import SecuritySettings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")


def check_password_strength(password: str) -> tuple[bool, str | None]:
    """
    Validate password meets the strength policy.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase, one lowercase and one digit

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"

    if not (_UPPER.search(password) and _LOWER.search(password) and _DIGIT.search(password)):
        return False, "Password must contain uppercase, lowercase, and numbers"

    return True, None


def validate_password_strength(password: str) -> None:
    """Raise WeakPasswordError if the password fails the policy."""
    ok, error = check_password_strength(password)
    if not ok:
        raise WeakPasswordError(error)


class CredentialHasher:
    """
    One-way password hashing.

    Usage:
        hasher = CredentialHasher(settings.security)
        digest = await hasher.hash("S3cure-pass")
        assert await hasher.verify("S3cure-pass", digest)
    """

    def __init__(self, settings: SecuritySettings):
        self.rounds = settings.bcrypt_rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.rounds,
            bcrypt__min_rounds=self.rounds,
        )

    def hash_sync(self, password: str) -> str:
        return self._context.hash(password)

    def verify_sync(self, password: str, password_hash: str) -> bool:
        """Constant-time verify. Malformed stored hashes verify as False."""
        if not password or not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            logger.warning("Stored password hash is not a recognised bcrypt hash")
            return False

    async def hash(self, password: str) -> str:
        """Hash a password for storage."""
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a stored hash."""
        return await asyncio.to_thread(self.verify_sync, password, password_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        """True when the hash was made with fewer rounds than configured."""
        return self._context.needs_update(password_hash)


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "CredentialHasher",
    "check_password_strength",
    "validate_password_strength",
]

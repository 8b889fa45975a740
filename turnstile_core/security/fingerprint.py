# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Keyed token and device fingerprints.

Refresh tokens are never stored in the clear. What lands in the database
is an HMAC-SHA256 digest keyed with a server-side secret, so a leaked
table cannot be replayed and a stored digest can still be checked
against a presented token.

Device fingerprints use the same construction over "ip|user-agent".
They exist for forensics only and must never drive an authorization
decision.
"""

import hashlib
import hmac

from ..exceptions.hierarchy import ConfigurationError

UNKNOWN = "unknown"


def _require_secret(secret: str) -> bytes:
    if not secret:
        raise ConfigurationError("HMAC secret is not set")
    return secret.encode("utf-8")


def digest_token(raw_token: str, secret: str) -> str:
    """
    HMAC-SHA256 a raw token string.

    Args:
        raw_token: Token exactly as handed to the client
        secret: HMAC key

    Returns:
        Lowercase hex digest (64 chars)
    """
    key = _require_secret(secret)
    return hmac.new(key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_token_digest(raw_token: str, stored_hex: str, secret: str) -> bool:
    """
    Check a presented token against a stored digest in constant time.

    A stored value of the wrong length (or one that is not hex) is
    rejected before comparison.
    """
    computed = bytes.fromhex(digest_token(raw_token, secret))
    try:
        stored = bytes.fromhex(stored_hex or "")
    except ValueError:
        return False

    if len(computed) != len(stored):
        return False

    return hmac.compare_digest(computed, stored)


def digest_device(ip_address: str | None, user_agent: str | None, secret: str) -> str | None:
    """
    Derive a device fingerprint from IP and User-Agent.

    Returns None when neither input is known.
    """
    if not ip_address and not user_agent:
        return None

    material = f"{ip_address or UNKNOWN}|{user_agent or UNKNOWN}"
    key = _require_secret(secret)
    return hmac.new(key, material.encode("utf-8"), hashlib.sha256).hexdigest()


__all__ = [
    "digest_token",
    "verify_token_digest",
    "digest_device",
]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Turnstile Core - Shared Security Primitives

Dependency-free building blocks used by the Turnstile engine:

Modules:
    exceptions: Structured exception hierarchy with ErrorKind tags
    security: Keyed token and device fingerprints
"""

__version__ = "1.0.0"

from .exceptions.hierarchy import (
    BadRequestError,
    ConfigurationError,
    ConflictError,
    ErrorKind,
    InvalidPayloadError,
    NotFoundError,
    RefreshTokenRejected,
    TokenExpiredError,
    TokenInvalidError,
    TurnstileError,
    UnauthorizedError,
    WeakPasswordError,
)
from .security.fingerprint import (
    digest_device,
    digest_token,
    verify_token_digest,
)

__all__ = [
    # Version
    "__version__",
    # Fingerprints
    "digest_token",
    "verify_token_digest",
    "digest_device",
    # Exceptions
    "ErrorKind",
    "TurnstileError",
    "UnauthorizedError",
    "TokenInvalidError",
    "TokenExpiredError",
    "RefreshTokenRejected",
    "BadRequestError",
    "WeakPasswordError",
    "InvalidPayloadError",
    "ConflictError",
    "NotFoundError",
    "ConfigurationError",
]

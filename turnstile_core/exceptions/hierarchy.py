# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Exception Hierarchy

Structured exceptions for the Turnstile engine.
All exceptions include context via `details` dict and carry an
ErrorKind tag that the transport boundary maps to a status code.
"""

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Transport-independent error category."""

    UNAUTHORIZED = "unauthorized"
    BAD_REQUEST = "bad_request"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class TurnstileError(Exception):
    """
    Base exception for all Turnstile errors.

    Attributes:
        message: Human-readable error message (safe to show to callers)
        details: Additional context as key-value pairs
        kind: Error category used by the boundary layer
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================================
# AUTHENTICATION ERRORS
# ============================================================


class UnauthorizedError(TurnstileError):
    """Bad credentials or an unusable token."""

    kind = ErrorKind.UNAUTHORIZED


class TokenInvalidError(UnauthorizedError):
    """Token signature is bad or the token is malformed."""

    pass


class TokenExpiredError(UnauthorizedError):
    """Token has expired."""

    pass


class RefreshTokenRejected(UnauthorizedError):
    """
    A refresh attempt failed.

    The `reason` is for metrics and logs only. It is deliberately left out
    of `message` and `to_dict()` so that a detected reuse looks exactly
    like any other invalid token to the caller.
    """

    GENERIC_MESSAGE = "Invalid or expired refresh token"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(self.GENERIC_MESSAGE)

    def __repr__(self) -> str:
        return f"RefreshTokenRejected(reason={self.reason!r})"


# ============================================================
# VALIDATION ERRORS
# ============================================================


class BadRequestError(TurnstileError):
    """Request is well-formed but not acceptable."""

    kind = ErrorKind.BAD_REQUEST


class WeakPasswordError(BadRequestError):
    """Password does not meet the strength policy."""

    pass


class InvalidPayloadError(BadRequestError):
    """Token claims are missing required fields."""

    def __init__(self, message: str, missing: list[str] | None = None, **kwargs):
        details = kwargs.get("details", {})
        if missing:
            details["missing"] = missing
        super().__init__(message, details)


# ============================================================
# RESOURCE ERRORS
# ============================================================


class ConflictError(TurnstileError):
    """Resource already exists."""

    kind = ErrorKind.CONFLICT


class NotFoundError(TurnstileError):
    """Resource does not exist."""

    kind = ErrorKind.NOT_FOUND


# ============================================================
# CONFIGURATION ERRORS
# ============================================================


class ConfigurationError(TurnstileError):
    """Configuration is invalid or missing."""

    pass


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "ErrorKind",
    # Base
    "TurnstileError",
    # Authentication
    "UnauthorizedError",
    "TokenInvalidError",
    "TokenExpiredError",
    "RefreshTokenRejected",
    # Validation
    "BadRequestError",
    "WeakPasswordError",
    "InvalidPayloadError",
    # Resources
    "ConflictError",
    "NotFoundError",
    # Configuration
    "ConfigurationError",
]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Session & credential lifecycle.

- codec: access/refresh JWT signing and verification
- passwords: bcrypt hashing and strength policy
- rotation: token pair issuance and single-use refresh rotation
- reuse: session-wide containment of refresh token reuse
- revocation: logout and password change/forgot/reset
- accounts: tenants, registration, login, access-token authentication
- cleanup: retention purge of revoked+expired records
- engine: wiring of all of the above
"""

from .accounts import AccountService, AuthContext, AuthResult, TenantContext, UserView
from .audit import AuditSink
from .cleanup import RevokedTokenCleanup
from .codec import Identity, TokenClaims, TokenCodec, TokenPair, TokenType
from .engine import SessionEngine, build_session_engine
from .notifier import EmailNotifier, Notifier, deliver_best_effort
from .passwords import CredentialHasher, check_password_strength, validate_password_strength
from .reuse import ReuseDetector, ReuseOutcome
from .revocation import SessionRevocation, SessionView
from .rotation import RefreshFailure, RotationEngine

__all__ = [
    # Codec
    "TokenCodec",
    "TokenType",
    "TokenClaims",
    "TokenPair",
    "Identity",
    # Passwords
    "CredentialHasher",
    "check_password_strength",
    "validate_password_strength",
    # Lifecycle
    "RotationEngine",
    "RefreshFailure",
    "ReuseDetector",
    "ReuseOutcome",
    "SessionRevocation",
    "SessionView",
    "RevokedTokenCleanup",
    # Accounts
    "AccountService",
    "AuthContext",
    "AuthResult",
    "TenantContext",
    "UserView",
    # Collaborators
    "AuditSink",
    "Notifier",
    "EmailNotifier",
    "deliver_best_effort",
    # Wiring
    "SessionEngine",
    "build_session_engine",
]

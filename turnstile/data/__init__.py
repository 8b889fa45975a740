# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Data layer for Turnstile.

Provides engine management, ORM models, the transactional SessionStore
and repositories for tenants, users and credential records. Supports
both PostgreSQL (production) and SQLite (development/tests) via
SQLAlchemy async.
"""

from .database import close_database, create_engine, init_database, is_sqlite
from .models import (
    AuditAction,
    AuditLogModel,
    Base,
    PasswordResetTokenModel,
    RefreshTokenModel,
    TenantModel,
    UserModel,
)
from .repositories import (
    AuditEvent,
    AuditLogRepository,
    PasswordResetTokenRepository,
    RefreshTokenRepository,
    TenantRepository,
    UserRepository,
)
from .store import SessionStore

__all__ = [
    # Engine lifecycle
    "create_engine",
    "init_database",
    "close_database",
    "is_sqlite",
    "SessionStore",
    # ORM models
    "Base",
    "AuditAction",
    "TenantModel",
    "UserModel",
    "RefreshTokenModel",
    "PasswordResetTokenModel",
    "AuditLogModel",
    # Repositories
    "AuditEvent",
    "TenantRepository",
    "UserRepository",
    "RefreshTokenRepository",
    "PasswordResetTokenRepository",
    "AuditLogRepository",
]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
Turnstile - Multi-Tenant Session & Credential Lifecycle Engine

Issues short-lived access tokens and single-use refresh tokens, rotates
refresh tokens atomically, contains refresh token reuse by revoking the
whole session, and ends sessions on logout and password changes.

Quick Start:
    from turnstile import build_session_engine, get_settings

    engine = build_session_engine(get_settings())
    await engine.create_tables()

    result = await engine.accounts.login(email, password, tenant_id=tid)
    pair = await engine.rotation.refresh(result.tokens.refresh_token)

All imports are lazy: ``import turnstile`` does not pull in SQLAlchemy,
passlib or FastAPI until an attribute that needs them is accessed.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__version__ = "1.0.0"

if TYPE_CHECKING:
    from .auth.accounts import AccountService as AccountService
    from .auth.codec import TokenCodec as TokenCodec
    from .auth.codec import TokenPair as TokenPair
    from .auth.engine import SessionEngine as SessionEngine
    from .auth.engine import build_session_engine as build_session_engine
    from .auth.revocation import SessionRevocation as SessionRevocation
    from .auth.rotation import RefreshFailure as RefreshFailure
    from .auth.rotation import RotationEngine as RotationEngine
    from .core.settings import Settings as Settings
    from .core.settings import get_settings as get_settings
    from .observability.metrics import AuthMetrics as AuthMetrics

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    # Settings
    "Settings": (".core.settings", "Settings"),
    "get_settings": (".core.settings", "get_settings"),
    # Engine
    "SessionEngine": (".auth.engine", "SessionEngine"),
    "build_session_engine": (".auth.engine", "build_session_engine"),
    "TokenCodec": (".auth.codec", "TokenCodec"),
    "TokenPair": (".auth.codec", "TokenPair"),
    "RotationEngine": (".auth.rotation", "RotationEngine"),
    "RefreshFailure": (".auth.rotation", "RefreshFailure"),
    "SessionRevocation": (".auth.revocation", "SessionRevocation"),
    "AccountService": (".auth.accounts", "AccountService"),
    # Observability
    "AuthMetrics": (".observability.metrics", "AuthMetrics"),
}

__all__ = [
    "__version__",
    *_LAZY_IMPORTS.keys(),
]


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details


"""
FastAPI dependencies.

The SessionEngine lives on app.state; request handlers reach it through
these dependencies.
"""

from fastapi import Depends, Header, Request

from turnstile_core.exceptions import TokenInvalidError

from ..auth.accounts import AuthContext
from ..auth.engine import SessionEngine
from ..observability.logging import set_request_context


def get_session_engine(request: Request) -> SessionEngine:
    return request.app.state.session_engine


def bearer_token(authorization: str | None = Header(None)) -> str:
    """Extract the token from `Authorization: Bearer <token>`."""
    if not authorization:
        raise TokenInvalidError("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise TokenInvalidError("Invalid Authorization header format. Use: Bearer <token>")
    return parts[1]


async def get_current_auth(
    token: str = Depends(bearer_token),
    engine: SessionEngine = Depends(get_session_engine),
) -> AuthContext:
    """FastAPI dependency: authenticate the access token on the request.

    Usage in routes:
        auth: AuthContext = Depends(get_current_auth)
    """
    auth = await engine.accounts.authenticate_access_token(token)
    set_request_context(tenant_id=auth.tenant_id, user_id=auth.user_id, session_id=auth.session_id)
    return auth


__all__ = ["get_session_engine", "bearer_token", "get_current_auth"]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Token Codec

Signs and verifies the two bearer token types:
- access:  sub, email, role, tenantId, sid, typ="access"   (short TTL)
- refresh: sub, email, role, tenantId, sid, jti, typ="refresh" (long TTL)

Access and refresh tokens are signed with different secrets, so one can
never be verified as the other. The codec is stateless: persistence of
refresh tokens belongs to the RotationEngine.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt

from turnstile_core.exceptions import InvalidPayloadError, TokenExpiredError, TokenInvalidError

from ..core.settings import SecuritySettings

logger = logging.getLogger(__name__)


class TokenType(StrEnum):
    """Values of the `typ` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenClaims:
    """
    Decoded token claims.

    Verification only checks signature and expiry, so typ, sid and jti
    may be missing or wrong; callers decide what they require.
    """

    sub: str
    typ: str | None = None
    email: str | None = None
    role: str | None = None
    tenant_id: str | None = None
    sid: str | None = None
    jti: str | None = None
    exp: datetime | None = None
    iat: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        def _ts(key: str) -> datetime | None:
            value = payload.get(key)
            return datetime.fromtimestamp(value, tz=UTC) if value is not None else None

        return cls(
            sub=payload.get("sub", ""),
            typ=payload.get("typ"),
            email=payload.get("email"),
            role=payload.get("role"),
            tenant_id=payload.get("tenantId"),
            sid=payload.get("sid"),
            jti=payload.get("jti"),
            exp=_ts("exp"),
            iat=_ts("iat"),
        )


@dataclass
class Identity:
    """Who a token pair is issued for."""

    user_id: str
    email: str | None = None
    role: str | None = None
    tenant_id: str | None = None

    def claims(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"sub": self.user_id}
        if self.email is not None:
            payload["email"] = self.email
        if self.role is not None:
            payload["role"] = self.role
        if self.tenant_id is not None:
            payload["tenantId"] = self.tenant_id
        return payload


@dataclass
class TokenPair:
    """Caller-facing result of issuance and rotation."""

    access_token: str
    refresh_token: str
    expires_in: int  # milliseconds until the access token expires
    session_id: str = field(default="", repr=False)
    refresh_token_id: str = field(default="", repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


class TokenCodec:
    """
    JWT issuance and verification.

    Usage:
        codec = TokenCodec(settings.security)

        access = codec.issue_access(identity, session_id=sid)
        refresh = codec.issue_refresh(identity, session_id=sid, token_id=jti)

        claims = codec.verify_refresh(refresh)
    """

    def __init__(
        self,
        settings: SecuritySettings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.algorithm = settings.jwt_algorithm
        self._access_secret = settings.jwt_access_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self.access_ttl = timedelta(minutes=settings.access_token_ttl_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_ttl_days)
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    # ============================================================
    # ISSUANCE
    # ============================================================

    def issue_access(self, identity: Identity, session_id: str | None = None) -> str:
        """Sign an access token with the access secret and access TTL."""
        now = self.now()
        payload = identity.claims()
        payload.update(typ=TokenType.ACCESS.value, iat=now, exp=now + self.access_ttl)
        if session_id:
            payload["sid"] = session_id
        return jwt.encode(payload, self._access_secret, algorithm=self.algorithm)

    def issue_refresh(
        self,
        identity: Identity,
        session_id: str | None,
        token_id: str | None,
    ) -> str:
        """
        Sign a refresh token with the refresh secret and refresh TTL.

        Raises:
            InvalidPayloadError: token_id (jti) or session_id (sid) missing
        """
        missing = [name for name, value in (("jti", token_id), ("sid", session_id)) if not value]
        if missing:
            raise InvalidPayloadError("Refresh token requires jti and sid claims", missing=missing)

        now = self.now()
        payload = identity.claims()
        payload.update(
            typ=TokenType.REFRESH.value,
            sid=session_id,
            jti=token_id,
            iat=now,
            exp=now + self.refresh_ttl,
        )
        return jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)

    def issue_pair(self, identity: Identity, session_id: str, token_id: str) -> TokenPair:
        """Sign both tokens for one session.

        expires_in is taken from the access token's own exp claim, so it
        matches exactly what was signed.
        """
        access_token = self.issue_access(identity, session_id=session_id)
        refresh_token = self.issue_refresh(identity, session_id=session_id, token_id=token_id)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.expires_in_ms(access_token),
            session_id=session_id,
            refresh_token_id=token_id,
        )

    def expires_in_ms(self, token: str) -> int:
        """Milliseconds from now until the token's exp claim (never negative)."""
        payload = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        remaining = payload["exp"] * 1000 - int(self.now().timestamp() * 1000)
        return max(0, int(remaining))

    # ============================================================
    # VERIFICATION
    # ============================================================

    def verify_access(self, token: str) -> TokenClaims:
        """
        Check signature and expiry against the access secret.

        Raises:
            TokenExpiredError: exp has passed
            TokenInvalidError: malformed or bad signature
        """
        return self._decode(token, self._access_secret)

    def verify_refresh(self, token: str) -> TokenClaims:
        """
        Check signature and expiry against the refresh secret.

        Raises:
            TokenExpiredError: exp has passed
            TokenInvalidError: malformed or bad signature
        """
        return self._decode(token, self._refresh_secret)

    def _decode(self, token: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError("Invalid token") from e

        return TokenClaims.from_payload(payload)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "TokenType",
    "TokenClaims",
    "Identity",
    "TokenPair",
    "TokenCodec",
]

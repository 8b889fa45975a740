# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Rotation Engine

Issues token pairs and rotates refresh tokens.

Refresh token lifecycle:

    Active --refresh--> Rotated   (revoked_at set, replaced_by_token_id set)
    Active --logout---> Revoked   (revoked_at set)
    Active --time-----> Expired

A Rotated or Revoked token presented again is reuse: the whole session
is revoked by the ReuseDetector and the caller gets the same generic 401
as for any other bad token.

Single use is enforced by one conditional UPDATE (WHERE id = :jti AND
revoked_at IS NULL) inside a serializable transaction. Exactly one
concurrent caller sees one affected row; anyone else, and any
transaction the database aborts, is treated as concurrent reuse.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import NoReturn

from sqlalchemy.exc import SQLAlchemyError

from turnstile_core.exceptions import RefreshTokenRejected, TokenExpiredError, TokenInvalidError
from turnstile_core.security import digest_device, digest_token, verify_token_digest

from ..core.settings import SecuritySettings
from ..data.models import RefreshTokenModel, UserModel
from ..data.repositories import RefreshTokenRepository, UserRepository
from ..data.store import SessionStore
from ..observability.logging import short_id
from ..observability.metrics import AuthMetrics
from .codec import Identity, TokenClaims, TokenCodec, TokenPair, TokenType
from .reuse import ReuseDetector

logger = logging.getLogger(__name__)


class RefreshFailure(StrEnum):
    """Why a refresh was rejected. Internal only; never shown to callers."""

    INVALID_JWT = "invalid_jwt"
    INVALID_TYPE = "invalid_type"
    MISSING_CLAIMS = "missing_claims"
    NOT_FOUND = "not_found"
    SUBJECT_MISMATCH = "subject_mismatch"
    SESSION_MISMATCH = "session_mismatch"
    DB_EXPIRED = "db_expired"
    REVOKED_REUSE = "revoked_reuse"
    HASH_MISMATCH = "hash_mismatch"
    USER_INACTIVE = "user_inactive"
    USER_DELETED = "user_deleted"
    CONCURRENT_REUSE = "concurrent_reuse"


@dataclass
class _Validated:
    claims: TokenClaims
    record: RefreshTokenModel
    user: UserModel


class _LostRace(Exception):
    """Conditional revoke matched no row."""


def identity_for(user: UserModel, fallback: TokenClaims | None = None) -> Identity:
    """Claims for a user, falling back to the presented token's values."""
    return Identity(
        user_id=user.id,
        email=user.email or (fallback.email if fallback else None),
        role=user.role or (fallback.role if fallback else None),
        tenant_id=user.tenant_id or (fallback.tenant_id if fallback else None),
    )


class RotationEngine:
    """
    Token pair issuance and single-use refresh rotation.

    Usage:
        engine = RotationEngine(store, codec, reuse_detector, metrics, settings.security)

        pair = await engine.issue_token_pair(user, ip_address=ip, user_agent=ua)
        pair = await engine.refresh(pair.refresh_token, ip_address=ip, user_agent=ua)
    """

    def __init__(
        self,
        store: SessionStore,
        codec: TokenCodec,
        reuse: ReuseDetector,
        metrics: AuthMetrics,
        settings: SecuritySettings,
    ):
        self.store = store
        self.codec = codec
        self.reuse = reuse
        self.metrics = metrics
        self._hmac_secret = settings.refresh_token_hmac_secret
        self.refresh_ttl = timedelta(days=settings.refresh_token_ttl_days)

    # ============================================================
    # ISSUANCE
    # ============================================================

    async def issue_token_pair(
        self,
        user: UserModel,
        session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """
        Sign a new access/refresh pair and persist the refresh record.

        A new session id is generated unless one is supplied.
        """
        pair = self.codec.issue_pair(
            identity_for(user),
            session_id=session_id or str(uuid.uuid4()),
            token_id=str(uuid.uuid4()),
        )
        async with self.store.transaction() as session:
            await self._persist(
                RefreshTokenRepository(session), pair, user.id, ip_address, user_agent
            )

        self.metrics.track_token_issued(TokenType.ACCESS.value)
        self.metrics.track_token_issued(TokenType.REFRESH.value)
        logger.info(
            "Issued token pair for user %s (session %s)",
            short_id(user.id),
            short_id(pair.session_id),
        )
        return pair

    async def _persist(
        self,
        tokens: RefreshTokenRepository,
        pair: TokenPair,
        user_id: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> RefreshTokenModel:
        now = self.codec.now()
        return await tokens.create(
            token_id=pair.refresh_token_id,
            user_id=user_id,
            session_id=pair.session_id,
            token_hash=digest_token(pair.refresh_token, self._hmac_secret),
            issued_at=now,
            expires_at=now + self.refresh_ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            device_fingerprint_hash=digest_device(ip_address, user_agent, self._hmac_secret),
        )

    # ============================================================
    # ROTATION
    # ============================================================

    async def refresh(
        self,
        raw_refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            RefreshTokenRejected: for every failure; `.reason` is a RefreshFailure
        """
        started = time.perf_counter()
        checked = await self._validate(raw_refresh_token, ip_address, user_agent)
        pair = await self._rotate(checked, ip_address, user_agent)

        self.metrics.track_token_rotation(checked.user.id, time.perf_counter() - started)
        return pair

    async def _validate(
        self,
        raw_refresh_token: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> _Validated:
        try:
            claims = self.codec.verify_refresh(raw_refresh_token)
        except (TokenInvalidError, TokenExpiredError):
            self._reject(RefreshFailure.INVALID_JWT)

        if claims.typ != TokenType.REFRESH:
            self._reject(RefreshFailure.INVALID_TYPE)
        if not claims.jti or not claims.sid:
            self._reject(RefreshFailure.MISSING_CLAIMS)

        async with self.store.transaction() as session:
            record = await RefreshTokenRepository(session).get_by_id(claims.jti)
            user = (
                await UserRepository(session).get_by_id(record.user_id)
                if record is not None
                else None
            )

        if record is None:
            self._reject(RefreshFailure.NOT_FOUND)
        if record.user_id != claims.sub:
            self._reject(RefreshFailure.SUBJECT_MISMATCH)
        if record.session_id != claims.sid:
            self._reject(RefreshFailure.SESSION_MISMATCH)
        if record.expires_at <= self.codec.now():
            self._reject(RefreshFailure.DB_EXPIRED)

        if record.revoked_at is not None:
            await self.reuse.handle_reuse(record, ip_address, user_agent)
            self._reject(RefreshFailure.REVOKED_REUSE, record)

        if not verify_token_digest(raw_refresh_token, record.token_hash, self._hmac_secret):
            self._reject(RefreshFailure.HASH_MISMATCH, record)
        if user is None:
            self._reject(RefreshFailure.USER_DELETED, record)
        if not user.is_active:
            self._reject(RefreshFailure.USER_INACTIVE, record)
        if user.deleted_at is not None:
            self._reject(RefreshFailure.USER_DELETED, record)

        return _Validated(claims=claims, record=record, user=user)

    async def _rotate(
        self,
        checked: _Validated,
        ip_address: str | None,
        user_agent: str | None,
    ) -> TokenPair:
        record = checked.record
        pair = self.codec.issue_pair(
            identity_for(checked.user, checked.claims),
            session_id=record.session_id,
            token_id=str(uuid.uuid4()),
        )

        try:
            async with self.store.transaction(serializable=True) as session:
                tokens = RefreshTokenRepository(session)
                affected = await tokens.conditional_revoke(
                    record.id, replaced_by=pair.refresh_token_id, now=self.codec.now()
                )
                if affected != 1:
                    raise _LostRace()
                await self._persist(tokens, pair, checked.user.id, ip_address, user_agent)
        except _LostRace:
            won = False
        except SQLAlchemyError as e:
            logger.warning(
                "Rotation transaction for token %s aborted: %s",
                short_id(record.id),
                type(e).__name__,
            )
            won = False
        else:
            won = True

        if not won:
            await self.reuse.handle_reuse(record, ip_address, user_agent)
            self._reject(RefreshFailure.CONCURRENT_REUSE, record)

        self.metrics.track_token_issued(TokenType.ACCESS.value)
        self.metrics.track_token_issued(TokenType.REFRESH.value)
        logger.info(
            "Rotated refresh token %s -> %s (session %s)",
            short_id(record.id),
            short_id(pair.refresh_token_id),
            short_id(record.session_id),
        )
        return pair

    def _reject(
        self, reason: RefreshFailure, record: RefreshTokenModel | None = None
    ) -> NoReturn:
        self.metrics.track_failed_refresh(reason.value)
        if record is not None:
            logger.info(
                "Refresh rejected (%s) for token %s session %s",
                reason.value,
                short_id(record.id),
                short_id(record.session_id),
            )
        else:
            logger.info("Refresh rejected (%s)", reason.value)
        raise RefreshTokenRejected(reason.value)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "RefreshFailure",
    "RotationEngine",
    "identity_for",
]

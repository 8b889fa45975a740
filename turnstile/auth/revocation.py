# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Session Revocation

Logout (one session, one device, all devices) and the password
lifecycle (change, forgot, reset), all of which end sessions.

Every revocation only touches records that are still active, so
repeating a call leaves the same end state and does not error.
Access tokens are not tracked: they stay valid until their own expiry.
"""

import logging
import secrets
from datetime import datetime, timedelta
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict

from turnstile_core.exceptions import (
    BadRequestError,
    NotFoundError,
    TokenExpiredError,
    TokenInvalidError,
    UnauthorizedError,
)
from turnstile_core.security import digest_token

from ..core.settings import SecuritySettings
from ..data.models import AuditAction, UserModel
from ..data.repositories import (
    AuditEvent,
    PasswordResetTokenRepository,
    RefreshTokenRepository,
    UserRepository,
)
from ..data.store import SessionStore
from ..observability.logging import short_id
from ..observability.metrics import AuthMetrics
from .accounts import resolve_tenant_id
from .audit import AuditSink
from .codec import TokenCodec
from .notifier import Notifier, deliver_best_effort
from .passwords import CredentialHasher, validate_password_strength

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If that email exists, a reset link has been sent"
RESET_PASSWORD_MESSAGE = "Password has been reset successfully"
INVALID_RESET_TOKEN = "Invalid or expired password reset token"


class SessionView(BaseModel):
    """One live session (its newest active refresh record)."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    issued_at: datetime
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class SessionRevocation:
    """
    Usage:
        revocation = SessionRevocation(
            store, codec, hasher, audit, notifier, metrics, settings.security
        )

        await revocation.logout(user_id, session_id=sid)
        await revocation.change_password(user_id, old, new, current_session_id=sid)
    """

    def __init__(
        self,
        store: SessionStore,
        codec: TokenCodec,
        hasher: CredentialHasher,
        audit: AuditSink,
        notifier: Notifier,
        metrics: AuthMetrics,
        settings: SecuritySettings,
    ):
        self.store = store
        self.codec = codec
        self.hasher = hasher
        self.audit = audit
        self.notifier = notifier
        self.metrics = metrics
        self._hmac_secret = settings.refresh_token_hmac_secret
        self.reset_ttl = timedelta(minutes=settings.password_reset_ttl_minutes)
        self.frontend_url = settings.frontend_url

    # ============================================================
    # LOGOUT
    # ============================================================

    async def logout(
        self,
        user_id: str,
        session_id: str | None = None,
        refresh_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        End a session.

        Target resolution: explicit session_id, else the sid/jti of
        refresh_token (if it verifies and belongs to the user), else
        every session of the user. Unknown users return silently.
        """
        user = await self._find_user(user_id)
        if user is None:
            return

        token_id = None
        if not session_id and refresh_token:
            session_id, token_id = self._target_from_refresh_token(user.id, refresh_token)

        now = self.codec.now()
        async with self.store.transaction() as session:
            tokens = RefreshTokenRepository(session)
            if session_id:
                revoked = await tokens.revoke_session_for_user(user.id, session_id, now=now)
            elif token_id:
                revoked = await tokens.revoke_token_for_user(token_id, user.id, now=now)
            else:
                revoked = await tokens.revoke_all_by_user(user.id, now=now)

        self.metrics.track_sessions_revoked("logout", revoked)
        logger.info(
            "Logout for user %s: %d tokens revoked (session %s)",
            short_id(user.id),
            revoked,
            short_id(session_id),
        )
        await self._audit(
            user,
            AuditAction.LOGOUT,
            f"User logged out: {user.email}",
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def _target_from_refresh_token(
        self, user_id: str, refresh_token: str
    ) -> tuple[str | None, str | None]:
        try:
            claims = self.codec.verify_refresh(refresh_token)
        except (TokenInvalidError, TokenExpiredError) as e:
            # Keep going: an unusable token means "log out everywhere"
            logger.warning(
                "Ignoring unusable refresh token on logout for user %s: %s",
                short_id(user_id),
                type(e).__name__,
            )
            return None, None

        if claims.sub != user_id:
            logger.warning("Refresh token on logout belongs to another user; ignoring it")
            return None, None
        return claims.sid, claims.jti

    async def logout_device(self, session_id: str, user_id: str) -> None:
        """Revoke one session of a user. Unknown users return silently."""
        user = await self._find_user(user_id)
        if user is None:
            return

        async with self.store.transaction() as session:
            revoked = await RefreshTokenRepository(session).revoke_session_for_user(
                user.id, session_id, now=self.codec.now()
            )

        self.metrics.track_sessions_revoked("logout_device", revoked)
        await self._audit(
            user, AuditAction.LOGOUT, f"User logged out device session: {session_id}"
        )

    async def logout_all_devices(
        self, user_id: str, except_session_id: str | None = None
    ) -> int:
        """
        Revoke every session of a user, optionally keeping one.

        Returns:
            Number of refresh token records revoked.
        """
        user = await self._find_user(user_id)
        if user is None:
            return 0

        async with self.store.transaction() as session:
            revoked = await RefreshTokenRepository(session).revoke_all_by_user(
                user.id, except_session_id=except_session_id, now=self.codec.now()
            )

        self.metrics.track_sessions_revoked("logout_all", revoked)
        await self._audit(user, AuditAction.LOGOUT, "User logged out all devices")
        return revoked

    async def list_active_sessions(self, user_id: str) -> list[SessionView]:
        """Live sessions of a user, newest first."""
        async with self.store.transaction() as session:
            records = await RefreshTokenRepository(session).list_active_by_user(user_id)

        views: dict[str, SessionView] = {}
        for record in records:
            # Records are newest first; keep the latest per session
            if record.session_id not in views:
                views[record.session_id] = SessionView.model_validate(record)

        self.metrics.track_active_sessions(len(views))
        return list(views.values())

    # ============================================================
    # PASSWORD LIFECYCLE
    # ============================================================

    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        current_session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Change a password and end every other session.

        Raises:
            BadRequestError: blank current password or weak new password
            NotFoundError: unknown user
            UnauthorizedError: current password is wrong
        """
        if not old_password or not old_password.strip():
            raise BadRequestError("Current password is required")

        user = await self._find_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not await self.hasher.verify(old_password, user.password_hash):
            raise UnauthorizedError("Current password is incorrect")

        validate_password_strength(new_password)
        password_hash = await self.hasher.hash(new_password)

        async with self.store.transaction() as session:
            await UserRepository(session).set_password(user.id, password_hash)
            revoked = await RefreshTokenRepository(session).revoke_all_by_user(
                user.id, except_session_id=current_session_id, now=self.codec.now()
            )

        self.metrics.track_sessions_revoked("password_change", revoked)
        logger.info(
            "Password changed for user %s; %d other session tokens revoked",
            short_id(user.id),
            revoked,
        )
        await self._audit(
            user,
            AuditAction.UPDATE,
            f"User changed password: {user.email}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await deliver_best_effort(
            "password changed", self.notifier.send_password_changed_notification(user.email)
        )

    async def forgot_password(
        self,
        email: str,
        tenant_id: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, str]:
        """
        Start a password reset.

        Always answers with the same message whether or not the account
        exists. Only a matching active user gets a token and an email.
        """
        tenant_id = await resolve_tenant_id(self.store, tenant_id)
        response = {"message": FORGOT_PASSWORD_MESSAGE}

        async with self.store.transaction() as session:
            user = await UserRepository(session).get_by_email(tenant_id, email)
        if user is None or not user.is_active:
            return response

        raw_token = secrets.token_hex(32)
        now = self.codec.now()
        expires_at = now + self.reset_ttl

        async with self.store.transaction() as session:
            resets = PasswordResetTokenRepository(session)
            await resets.invalidate_unused(user.id, now=now)
            reset = await resets.create(
                user_id=user.id,
                token_hash=digest_token(raw_token, self._hmac_secret),
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent,
            )

        await deliver_best_effort(
            "password reset",
            self.notifier.send_password_reset_notification(
                user.email, raw_token, self._reset_url(raw_token), expires_at
            ),
        )
        await self.audit.record(
            AuditEvent(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action=AuditAction.UPDATE,
                entity_type="PasswordResetToken",
                entity_id=reset.id,
                description=f"Password reset requested: {user.email}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        return response

    def _reset_url(self, raw_token: str) -> str | None:
        if not self.frontend_url:
            return None
        return f"{self.frontend_url.rstrip('/')}/reset-password?token={quote(raw_token, safe='')}"

    async def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, str]:
        """
        Complete a password reset and end every session of the user.

        Unknown, used, expired and orphaned tokens all fail the same way.

        Raises:
            BadRequestError
        """
        validate_password_strength(new_password)

        async with self.store.transaction() as session:
            reset = await PasswordResetTokenRepository(session).find_unused_by_hash(
                digest_token(token or "", self._hmac_secret)
            )

        now = self.codec.now()
        if (
            reset is None
            or reset.expires_at <= now
            or reset.user is None
            or reset.user.deleted_at is not None
            or not reset.user.is_active
        ):
            raise BadRequestError(INVALID_RESET_TOKEN)

        user = reset.user
        password_hash = await self.hasher.hash(new_password)

        async with self.store.transaction() as session:
            # Claim the token first so two concurrent resets cannot both apply
            if await PasswordResetTokenRepository(session).mark_used(reset.id, now=now) != 1:
                raise BadRequestError(INVALID_RESET_TOKEN)
            await UserRepository(session).set_password(user.id, password_hash)
            revoked = await RefreshTokenRepository(session).revoke_all_by_user(user.id, now=now)

        self.metrics.track_sessions_revoked("password_reset", revoked)
        logger.info(
            "Password reset for user %s; %d session tokens revoked", short_id(user.id), revoked
        )
        await self._audit(
            user,
            AuditAction.UPDATE,
            f"User reset password: {user.email}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await deliver_best_effort(
            "password changed", self.notifier.send_password_changed_notification(user.email)
        )
        return {"message": RESET_PASSWORD_MESSAGE}

    # ============================================================
    # HELPERS
    # ============================================================

    async def _find_user(self, user_id: str) -> UserModel | None:
        async with self.store.transaction() as session:
            return await UserRepository(session).get_by_id(user_id)

    async def _audit(
        self,
        user: UserModel,
        action: AuditAction,
        description: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        await self.audit.record(
            AuditEvent(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action=action,
                entity_type="User",
                entity_id=user.id,
                description=description,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )


__all__ = [
    "SessionRevocation",
    "SessionView",
    "FORGOT_PASSWORD_MESSAGE",
    "RESET_PASSWORD_MESSAGE",
    "INVALID_RESET_TOKEN",
]

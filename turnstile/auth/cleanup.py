# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Retention cleanup for spent credentials.

A refresh token record is deleted only when it is both past its expiry
and was revoked longer ago than the retention window. Revoked records
are what reuse detection looks up, so they must outlive the tokens
themselves for a while.
"""

import logging
from datetime import UTC, datetime, timedelta

from ..core.settings import SecuritySettings
from ..data.repositories import PasswordResetTokenRepository, RefreshTokenRepository
from ..data.store import SessionStore
from ..observability.metrics import AuthMetrics

logger = logging.getLogger(__name__)


class RevokedTokenCleanup:
    """Usage: deleted = await RevokedTokenCleanup(store, settings.security, metrics).purge()"""

    def __init__(self, store: SessionStore, settings: SecuritySettings, metrics: AuthMetrics):
        self.store = store
        self.metrics = metrics
        self.retention = timedelta(days=settings.revoked_token_retention_days)

    async def purge(self, now: datetime | None = None) -> int:
        """
        Delete revoked+expired refresh records past retention, and reset
        tokens that expired before the same cutoff.

        Returns:
            Number of refresh token records deleted.
        """
        now = now or datetime.now(UTC)
        cutoff = now - self.retention

        async with self.store.transaction() as session:
            purged = await RefreshTokenRepository(session).purge_revoked_expired(now, cutoff)
            resets = await PasswordResetTokenRepository(session).purge_expired(cutoff)

        self.metrics.track_purged(purged)
        logger.info(
            "Retention cleanup: %d refresh tokens, %d reset tokens deleted (cutoff %s)",
            purged,
            resets,
            cutoff.isoformat(),
        )
        return purged


__all__ = ["RevokedTokenCleanup"]

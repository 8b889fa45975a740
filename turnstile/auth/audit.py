# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Audit Sink

Append-only audit trail. Each entry is written in its own short
transaction and mirrored to the `audit` logger. Writes are best-effort:
a failing audit insert is logged and never fails the credential
operation it describes.

Callers must not hold an open write transaction while recording, since
the entry is committed independently of it.
"""

import logging
from datetime import datetime

from ..data.models import AuditAction
from ..data.repositories import AuditEvent, AuditLogRepository
from ..data.store import SessionStore
from ..observability.logging import AuditLogger, audit_logger

logger = logging.getLogger(__name__)


class AuditSink:
    """
    Usage:
        audit = AuditSink(store)
        await audit.record(
            AuditEvent(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action=AuditAction.LOGOUT,
                entity_type="User",
                entity_id=user.id,
                description=f"User logged out: {user.email}",
            )
        )
    """

    def __init__(self, store: SessionStore, mirror: AuditLogger | None = None):
        self.store = store
        self.mirror = mirror or audit_logger

    async def record(self, event: AuditEvent) -> bool:
        """Persist an entry. Returns False (after logging) if the write failed."""
        self.mirror.log(
            action=event.action.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            user_id=event.user_id,
            tenant_id=event.tenant_id,
            description=event.description,
            details=event.changes,
        )
        try:
            async with self.store.transaction() as session:
                await AuditLogRepository(session).record(event)
        except Exception:
            logger.exception("Failed to persist audit entry %s", event.action.value)
            return False
        return True

    async def count_security_incidents(self, user_id: str, since: datetime) -> int:
        async with self.store.transaction() as session:
            return await AuditLogRepository(session).count_security_incidents(user_id, since)

    async def entries_for_user(self, user_id: str, action: AuditAction | None = None):
        async with self.store.transaction() as session:
            return list(await AuditLogRepository(session).list_for_user(user_id, action))


__all__ = ["AuditSink", "AuditEvent", "AuditAction"]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Refresh token reuse handling.

A rotated or revoked refresh token that shows up again means somebody
other than the legitimate client may hold the session. The response is
to kill the whole session (every token sharing its session_id, including
any rotated descendant the attacker may already have), then record,
notify and count.

Only the session revocation is allowed to raise. Audit, notification,
metrics and escalation are best-effort.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..core.settings import SecuritySettings
from ..data.models import AuditAction, RefreshTokenModel
from ..data.repositories import AuditEvent, RefreshTokenRepository, UserRepository
from ..data.store import SessionStore
from ..observability.logging import short_id
from ..observability.metrics import AuthMetrics
from .audit import AuditSink
from .notifier import Notifier, deliver_best_effort

logger = logging.getLogger(__name__)

SECURITY_ALERT_SUBJECT = "Suspicious Activity Detected"
SECURITY_ALERT_MESSAGE = (
    "A previously used refresh token was presented. "
    "All sessions for that device have been logged out."
)


@dataclass
class ReuseOutcome:
    """What handle_reuse did."""

    session_id: str
    revoked: int
    incident_count: int | None = None
    escalated: bool = False


class ReuseDetector:
    """
    Session-wide containment for refresh token reuse.

    Usage:
        detector = ReuseDetector(store, audit, notifier, metrics, settings.security)
        await detector.handle_reuse(record, ip_address=ip, user_agent=ua)
    """

    def __init__(
        self,
        store: SessionStore,
        audit: AuditSink,
        notifier: Notifier,
        metrics: AuthMetrics,
        settings: SecuritySettings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.audit = audit
        self.notifier = notifier
        self.metrics = metrics
        self.incident_window = timedelta(minutes=settings.reuse_incident_window_minutes)
        self.escalation_threshold = settings.reuse_escalation_threshold
        self._clock = clock or (lambda: datetime.now(UTC))

    async def handle_reuse(
        self,
        record: RefreshTokenModel,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ReuseOutcome:
        """
        Revoke the record's whole session and raise the alarm.

        Returns:
            ReuseOutcome describing the containment.
        """
        now = self._clock()

        async with self.store.transaction() as session:
            revoked = await RefreshTokenRepository(session).revoke_all_by_session(
                record.session_id, now=now
            )
            user = await UserRepository(session).get_by_id(record.user_id)

        logger.warning(
            "Refresh token reuse: token %s, session %s revoked (%d live tokens)",
            short_id(record.id),
            short_id(record.session_id),
            revoked,
        )
        self.metrics.track_sessions_revoked("reuse", revoked)
        outcome = ReuseOutcome(session_id=record.session_id, revoked=revoked)

        if user is not None:
            await self.audit.record(
                AuditEvent(
                    tenant_id=user.tenant_id,
                    user_id=user.id,
                    action=AuditAction.SECURITY_INCIDENT,
                    entity_type="RefreshToken",
                    entity_id=record.id,
                    description=(
                        f"Refresh token reuse detected - session {record.session_id} revoked"
                    ),
                    ip_address=ip_address,
                    user_agent=user_agent,
                    occurred_at=now,
                )
            )
            await deliver_best_effort(
                "security alert",
                self.notifier.send_security_alert(
                    user.email, SECURITY_ALERT_SUBJECT, SECURITY_ALERT_MESSAGE
                ),
            )

        self.metrics.track_reuse_detection(record.user_id, record.session_id)
        await self._check_escalation(record.user_id, outcome)
        return outcome

    async def _check_escalation(self, user_id: str, outcome: ReuseOutcome) -> None:
        since = self._clock() - self.incident_window
        try:
            count = await self.audit.count_security_incidents(user_id, since)
        except Exception:
            logger.exception("Could not count security incidents for user %s", short_id(user_id))
            return

        outcome.incident_count = count
        if count >= self.escalation_threshold:
            outcome.escalated = True
            self.metrics.track_security_escalation(user_id, count)


__all__ = [
    "ReuseDetector",
    "ReuseOutcome",
    "SECURITY_ALERT_SUBJECT",
    "SECURITY_ALERT_MESSAGE",
]

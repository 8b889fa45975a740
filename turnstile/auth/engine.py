# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Component wiring.

Builds every engine component from one Settings object. Entry points
(CLI, app factory, tests) call build_session_engine(); nothing in the
engine reads process-wide configuration on its own.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.settings import Settings
from ..data.database import close_database, create_engine, init_database
from ..data.store import SessionStore
from ..observability.metrics import AuthMetrics
from .accounts import AccountService
from .audit import AuditSink
from .cleanup import RevokedTokenCleanup
from .codec import TokenCodec
from .notifier import EmailNotifier, Notifier
from .passwords import CredentialHasher
from .reuse import ReuseDetector
from .revocation import SessionRevocation
from .rotation import RotationEngine

logger = logging.getLogger(__name__)


@dataclass
class SessionEngine:
    """All engine components sharing one store, one metrics sink and one notifier."""

    settings: Settings
    db: AsyncEngine
    store: SessionStore
    codec: TokenCodec
    hasher: CredentialHasher
    metrics: AuthMetrics
    notifier: Notifier
    audit: AuditSink
    reuse: ReuseDetector
    rotation: RotationEngine
    revocation: SessionRevocation
    accounts: AccountService
    cleanup: RevokedTokenCleanup

    async def create_tables(self) -> None:
        await init_database(self.db)

    async def close(self) -> None:
        await close_database(self.db)


def build_session_engine(
    settings: Settings,
    db: AsyncEngine | None = None,
    notifier: Notifier | None = None,
    metrics: AuthMetrics | None = None,
    codec: TokenCodec | None = None,
) -> SessionEngine:
    """
    Wire the engine.

    Args:
        settings: Application settings
        db: Existing AsyncEngine (created from settings.database if omitted)
        notifier: Notification channel (EmailNotifier if omitted)
        metrics: Metrics sink (a fresh AuthMetrics if omitted)
        codec: Token codec (built from settings.security if omitted)
    """
    security = settings.security
    db = db or create_engine(settings.database)
    store = SessionStore(db)
    metrics = metrics or AuthMetrics(namespace=settings.observability.metrics_namespace)
    notifier = notifier or EmailNotifier(settings.notifications)
    codec = codec or TokenCodec(security)
    hasher = CredentialHasher(security)

    audit = AuditSink(store)
    reuse = ReuseDetector(store, audit, notifier, metrics, security, clock=codec.now)
    rotation = RotationEngine(store, codec, reuse, metrics, security)

    return SessionEngine(
        settings=settings,
        db=db,
        store=store,
        codec=codec,
        hasher=hasher,
        metrics=metrics,
        notifier=notifier,
        audit=audit,
        reuse=reuse,
        rotation=rotation,
        revocation=SessionRevocation(store, codec, hasher, audit, notifier, metrics, security),
        accounts=AccountService(store, codec, hasher, rotation, audit, metrics),
        cleanup=RevokedTokenCleanup(store, security, metrics),
    )


__all__ = ["SessionEngine", "build_session_engine"]

# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Session Store

Transaction boundary for everything that touches refresh tokens, reset
tokens and users. Repositories do the queries; the store decides how
many of them share one atomic unit.

Usage:
    store = SessionStore(engine)

    async with store.transaction() as session:
        users = UserRepository(session)
        ...

    # Rotation path: one serializable transaction
    async with store.transaction(serializable=True) as session:
        tokens = RefreshTokenRepository(session)
        if await tokens.conditional_revoke(jti, replaced_by=new_jti) == 1:
            await tokens.create(...)
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class SessionStore:
    """Hands out transactional AsyncSessions."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._serializable_factory = async_sessionmaker(
            engine.execution_options(isolation_level="SERIALIZABLE"),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def transaction(self, serializable: bool = False) -> AsyncIterator[AsyncSession]:
        """
        Yield a session inside a single transaction.

        Commits on success and rolls back on any exception, which is
        re-raised. With serializable=True the transaction runs at
        SERIALIZABLE isolation.
        """
        factory = self._serializable_factory if serializable else self._session_factory
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


__all__ = ["SessionStore"]

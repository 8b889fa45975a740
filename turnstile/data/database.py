# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Database engine management.

Supports:
- PostgreSQL via asyncpg (production)
- SQLite via aiosqlite (development / single-node / tests)

The backend is determined by the URL in DatabaseSettings.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..core.settings import DatabaseSettings
from .models import Base

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits on a locked database before giving up
SQLITE_BUSY_TIMEOUT = 5


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create an async engine for the configured backend."""
    url = settings.url
    engine_kwargs: dict = {}

    if is_sqlite(url):
        # SQLite: no pool sizing, check_same_thread off
        engine_kwargs.update(
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
            pool_pre_ping=False,
        )
        logger.info("Initializing SQLite database: %s", url)
    else:
        # PostgreSQL: connection pooling
        engine_kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_pre_ping=True,
        )
        logger.info("Initializing PostgreSQL database")

    engine = create_async_engine(url, echo=settings.echo, **engine_kwargs)

    if is_sqlite(url):

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


async def init_database(engine: AsyncEngine) -> None:
    """Create tables from ORM metadata.

    Used for SQLite and for first-time bootstrap (`turnstile init-db`).
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables created from ORM metadata")


async def close_database(engine: AsyncEngine) -> None:
    """Dispose the engine and release all connections."""
    await engine.dispose()
    logger.info("Database connections closed")


__all__ = [
    "create_engine",
    "init_database",
    "close_database",
    "is_sqlite",
]

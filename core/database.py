"""
Database access for the cohort sync service (SQLAlchemy Core on asyncpg).

Stores open one short-lived connection per call, so a reconcile holds up to
SYNC_MAX_CONCURRENCY connections at once (one per instance being synced),
next to whatever the API routes hold. The pool is sized from that setting,
and waiting for a pooled connection is bounded by the store timeout.

Alembic and the APScheduler job store run synchronously and use
get_sync_database_url() instead.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .config import get_store_timeout_seconds, get_sync_max_concurrency
from .tables import metadata  # noqa: F401 - exported for Alembic

# Connections kept for API requests on top of the reconcile workers
API_POOL_CONNECTIONS = 4

_engine: AsyncEngine | None = None


def _get_database_url() -> str:
    """DATABASE_URL with the asyncpg driver."""
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set.")

    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            _get_database_url(),
            echo=os.environ.get("SQL_ECHO", "").lower() == "true",
            pool_size=get_sync_max_concurrency() + API_POOL_CONNECTIONS,
            max_overflow=API_POOL_CONNECTIONS,
            pool_timeout=get_store_timeout_seconds(),
            pool_recycle=1800,
            pool_pre_ping=True,
        )
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """Pooled connection for reads."""
    engine = get_engine()
    async with engine.connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncGenerator[AsyncConnection, None]:
    """
    Connection inside a transaction: commits on success, rolls back on error.

    Each enrolment or group mutation of a reconcile gets its own transaction,
    so a failure only loses that one change.
    """
    engine = get_engine()
    async with engine.begin() as conn:
        yield conn


async def close_engine() -> None:
    """Dispose of the pool. Called on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    return bool(os.environ.get("DATABASE_URL"))


def get_sync_database_url() -> str:
    """psycopg2 URL for Alembic migrations and the scheduler job store."""
    database_url = os.environ.get("DATABASE_URL", "")

    if "postgresql+asyncpg://" in database_url:
        return database_url.replace("postgresql+asyncpg://", "postgresql://")
    if database_url.startswith("postgresql://"):
        return database_url

    raise ValueError("DATABASE_URL must be set to a postgresql:// URL")

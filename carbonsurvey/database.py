"""
Carbon Survey — Async Database Engine & Session Factory

The engine is built from ``DATABASE_URL``.  PostgreSQL URLs are routed
through ``asyncpg`` with a tuned connection pool; SQLite URLs (used for
local experiments and the test-suite) go through ``aiosqlite`` with the
default pool, since SQLite does not accept the pool sizing arguments.

Both paths expose the same ``get_db`` async generator for FastAPI
dependency injection.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from carbonsurvey.config import get_settings

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Declarative base for all ORM models
# ------------------------------------------------------------------ #

class Base(DeclarativeBase):
    """Shared declarative base.

    Every SQLAlchemy model in the project should inherit from this class::

        from carbonsurvey.database import Base

        class User(Base):
            __tablename__ = "users"
            ...
    """
    pass


# JSONB on PostgreSQL, plain JSON everywhere else.
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ------------------------------------------------------------------ #
# Pool configuration (PostgreSQL only)
# ------------------------------------------------------------------ #

_POOL_KWARGS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


# ------------------------------------------------------------------ #
# Engine construction helpers
# ------------------------------------------------------------------ #

def normalise_database_url(url: str) -> str:
    """Upgrade plain driver-less URLs to their async dialects.

    ``postgresql://`` becomes ``postgresql+asyncpg://`` and ``sqlite://``
    becomes ``sqlite+aiosqlite://`` so that developers do not need to
    remember the async driver prefix.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself on SQLite connections.

    The sqlite3 driver defers BEGIN until the first write, so a SAVEPOINT
    issued earlier opens (and RELEASE commits) its own transaction.
    Template code allocation relies on ``begin_nested()`` behaving.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _create_engine() -> AsyncEngine:
    """Build the async engine for the configured ``DATABASE_URL``."""
    settings = get_settings()
    url = normalise_database_url(settings.DATABASE_URL)

    kwargs: dict = {"echo": settings.LOG_LEVEL == "DEBUG"}
    if not url.startswith("sqlite"):
        kwargs.update(_POOL_KWARGS)

    engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(engine)

    logger.info("Database engine created (%s)", engine.url.get_backend_name())
    return engine


# ------------------------------------------------------------------ #
# Module-level engine & session factory
# ------------------------------------------------------------------ #

engine = _create_engine()

async_session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ------------------------------------------------------------------ #
# FastAPI dependency
# ------------------------------------------------------------------ #

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` and ensure it is closed afterwards.

    The session is committed when the route returns normally and rolled
    back when it raises (including ``HTTPException``).

    Usage in a FastAPI route::

        from fastapi import Depends
        from carbonsurvey.database import get_db

        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

"""
Database layer: async SQLAlchemy 2.0 engine for the area store.

Provides:
    • Lazily created async engine and session factory
    • Declarative Base for ORM entities
    • Table creation / engine disposal helpers

The engine is created on first use rather than at import time so that the
in-memory repository (tests, local demos) never needs a database driver.

Usage:
    from floodwatch.core.database import get_session_factory, init_db

    await init_db()
    async with get_session_factory()() as session:
        ...
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from floodwatch.core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def build_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine; pool options only apply to server databases."""
    url = url or settings.DATABASE_URL
    kwargs = {"echo": settings.DATABASE_ECHO}
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(url, **kwargs)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
        logger.info("Database engine created: %s", settings.DATABASE_URL.split("@")[-1])
    return _engine


def get_session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the given engine (default: the shared one)."""
    global _session_factory
    if engine is not None:
        return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False,
        )
    return _session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables (dev/test only: use migrations in production)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def close_db() -> None:
    """Dispose the shared engine, if one was created."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")

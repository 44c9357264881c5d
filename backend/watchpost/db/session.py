"""
Database Session Management Module
==================================

Responsible for:
- Creating the async database engine
- Building the session factory used by the event store
- Creating tables for local and test runs

Connection validation (pool_pre_ping) is enabled for server databases.
In-memory SQLite shares a single connection across sessions.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from watchpost.core.config import Settings, get_settings
from watchpost.core.logging import get_logger
from watchpost.db.base import Base

logger = get_logger(__name__)


# ==========================
# Database Engine
# ==========================

def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine for the configured database URL.

    Args:
        settings: Settings override

    Returns:
        AsyncEngine instance
    """
    settings = settings or get_settings()
    url = settings.DATABASE_URL
    options: Dict[str, Any] = {"echo": settings.DB_ECHO, "future": True}

    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True

    logger.debug("database_engine_created", dialect=url.split(":", 1)[0])
    return create_async_engine(url, **options)


# ==========================
# Session Factory
# ==========================

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to the engine."""
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


# ==========================
# Schema Management
# ==========================

async def create_all_tables(engine: AsyncEngine) -> None:
    """
    Create every table registered on the declarative Base.

    Production deployments use Alembic migrations instead.
    """
    # Register models on the metadata
    import watchpost.models  # noqa: F401

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("database_tables_created", tables=sorted(Base.metadata.tables))


async def drop_all_tables(engine: AsyncEngine) -> None:
    """Drop every table registered on the declarative Base."""
    import watchpost.models  # noqa: F401

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)

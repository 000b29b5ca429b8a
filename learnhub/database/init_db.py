"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory
2. Creating the schema for the assessment tables
3. Disposing of the engine on shutdown
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from learnhub.common.logger import app_logger
from learnhub.database.base import Base

logger = app_logger.getChild("database.init_db")


def create_engine(database_url: str, echo: bool = False, pool_size: int = 5) -> AsyncEngine:
    """
    Create the async database engine.

    Args:
        database_url: Async database URL, e.g. ``sqlite+aiosqlite:///./learnhub.db``
        echo: Whether to echo SQL statements
        pool_size: Connection pool size (ignored for SQLite)

    Returns:
        AsyncEngine instance
    """
    kwargs = {"echo": echo}
    if database_url.startswith("postgresql"):
        kwargs.update({
            "pool_size": pool_size,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })

    logger.info(f"Initializing database engine for {database_url.split('://')[0]}")
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all assessment tables that do not exist yet."""
    # Register the table classes on the metadata
    from learnhub.assessments import database_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema is up to date")


async def close_database(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
    logger.info("Database connections closed")

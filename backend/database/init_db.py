"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory
2. Creating the schema for development and tests
3. Disposing of the connection pool
"""

from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from backend.common.logger import app_logger
from backend.database.base import metadata
from backend.database import models  # noqa: F401  registers tables on the metadata

# Setup module logger
logger = app_logger.getChild("database.init_db")

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get the global session factory."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


async def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    create_schema: bool = False,
) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool
        create_schema: Create missing tables (development and tests; use
            the Alembic migrations elsewhere)

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    logger.info(f"Initializing database with URL: {database_url[:10]}...")
    options = {"echo": echo}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)

    _engine = create_async_engine(database_url, **options)
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        if create_schema:
            await create_all(_engine)
    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise

    logger.info("Database engine initialized successfully")
    return _engine


async def create_all(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database schema created")


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed successfully")


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency yielding a session that is closed afterwards.
    """
    async with get_session_factory()() as session:
        yield session

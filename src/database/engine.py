"""
Database engine configuration for KAVARA Mini App backend

Async SQLAlchemy 2.0 setup with connection pooling
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from config.config import DATABASE_URL, ENVIRONMENT
from src.database.models import Base

logger = logging.getLogger(__name__)


# Global engine and session maker
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Create and configure async database engine

    Returns:
        Configured AsyncEngine instance
    """
    global engine

    if engine is None:
        is_production = ENVIRONMENT == "production"

        engine = create_async_engine(
            DATABASE_URL,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=10 if is_production else 5,
            max_overflow=20 if is_production else 10,
            pool_pre_ping=True,
            pool_recycle=3600,
            echo=False,
            connect_args={
                "statement_cache_size": 0,
                "server_settings": {"application_name": "kavara"},
            },
        )

        logger.info(f"Database engine created - Environment: {ENVIRONMENT}")

    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create async session maker (once per process)"""
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        AsyncSessionLocal = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,  # Important for async!
            autoflush=False,
        )
        logger.info("Session maker created")

    return AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Usage in routes:
        async def route(session: AsyncSession = Depends(get_session)):
            ...
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error: {e}")
            raise


async def init_db() -> None:
    """
    Create all tables

    For production, use Alembic migrations instead.
    """
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created successfully")


async def dispose_engine() -> None:
    """Dispose engine and close all connections (call on shutdown)"""
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
        engine = None
        AsyncSessionLocal = None


async def check_connection() -> bool:
    """Check database connection"""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check: OK")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


if __name__ == "__main__":
    import asyncio
    from config.logging import setup_logging

    setup_logging(log_to_files=False)

    async def test():
        is_connected = await check_connection()
        print(f'Connection: {"✅ OK" if is_connected else "❌ FAILED"}')
        await dispose_engine()

    asyncio.run(test())

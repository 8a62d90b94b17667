"""
Pytest configuration and fixtures for KAVARA loyalty engine tests
"""

import pytest
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.database import crud
from src.database.models import Base, Box, Product


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def session_maker(test_db_engine):
    return async_sessionmaker(
        test_db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def user(db_session):
    return await crud.create_user(
        db_session, telegram_id=111111, username="Buyer", first_name="Anna"
    )


@pytest.fixture
async def other_user(db_session):
    return await crud.create_user(
        db_session, telegram_id=222222, username="Partner", first_name="Oleg"
    )


@pytest.fixture
async def box(db_session):
    box = Box(name="Fitness Box", price=1000)
    db_session.add(box)
    await db_session.commit()
    return box


@pytest.fixture
async def product(db_session):
    product = Product(name="Protein Bar", category="food", price=2000)
    db_session.add(product)
    await db_session.commit()
    return product

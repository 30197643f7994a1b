from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.database.base import Base
from src.core.logging import setup_logging

# Import models so they are registered with Base.metadata
from src.core.documents.models import DocumentSequence  # noqa: F401

setup_logging()


def make_engine(path, busy_timeout: float = 5.0) -> AsyncEngine:
    # File database: every session gets its own connection, like separate requests
    return create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        connect_args={"timeout": busy_timeout},
    )


@pytest.fixture
def database_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
async def engine(database_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables before each test and drop them after."""
    test_engine = make_engine(database_path)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    async with session_factory() as session:
        yield session

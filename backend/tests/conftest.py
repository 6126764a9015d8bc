"""Test configuration and fixtures."""

import os

# Must be set before pha.core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pha.core.database import create_engine_for, get_async_session
from pha.models import Base


@pytest.fixture
async def async_engine(tmp_path):
    """File-backed SQLite database per test, so separate sessions see each other's commits."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, with request sessions bound to the test database."""
    from pha.main import app

    async def _test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = _test_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()

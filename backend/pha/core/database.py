"""Database configuration and session management."""
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pha.core.config import settings


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("postgresql+asyncpg"):
        return {
            "server_settings": {
                "jit": "off",
                "statement_timeout": "30000",  # 30 seconds timeout
            },
            "command_timeout": 30,
        }
    if database_url.startswith("sqlite"):
        # Seconds to wait for another connection's write lock
        return {"timeout": 30}
    return {}


def configure_sqlite(async_engine: AsyncEngine) -> None:
    """Foreign keys on, and every transaction takes the write lock when it begins.

    With SQLite's default deferred transactions two writers can each hold a
    read lock and both fail to upgrade. ``BEGIN IMMEDIATE`` makes them queue
    on the busy timeout instead.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    async_engine = create_async_engine(
        database_url,
        echo=echo,
        poolclass=NullPool,  # For development simplicity
        future=True,
        connect_args=_connect_args(database_url),
    )
    if async_engine.dialect.name == "sqlite":
        configure_sqlite(async_engine)
    return async_engine


# Create async engine
engine = create_engine_for(settings.DATABASE_URL, echo=settings.DEBUG)

# Create session factory
async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get async database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    from pha.models import Base

    async with engine.begin() as conn:
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


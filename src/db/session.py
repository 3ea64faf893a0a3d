"""Async database engine and session helpers."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_engine_for(database_url: str) -> AsyncEngine:
    """Build an engine; SQLite URLs skip the pool pre-ping."""

    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)
    return create_async_engine(database_url, pool_pre_ping=True)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker whose instances stay readable after commit."""

    return async_sessionmaker(engine, expire_on_commit=False)

"""
Database connection and session management.

Key concepts:
- SQLAlchemy 2.0's async API (asyncpg in production, aiosqlite in tests)
- The engine and session factory are built by the app factory and live on
  app.state, so each app instance owns its own connection pool
- get_db() is a FastAPI dependency that provides one session per request
  and guarantees it is closed afterwards
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def create_engine(database_url: str, echo: bool = False,
                  pool_size: int = 5, max_overflow: int = 10) -> AsyncEngine:
    """Create the async engine.

    SQLite drivers manage their own pool, so the pool sizing arguments are
    only passed for server databases.
    """
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow)
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps objects readable after commit
    # (a lazy refresh would fail under async)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request):
    """FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: AsyncEngine):
    """Create all tables defined by our models.

    Called once at startup. A production deployment would run migrations
    instead.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

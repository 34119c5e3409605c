"""
Database Session Management
SQLAlchemy 2.0 Async Session Configuration
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)

from app.core.config import settings
from app.models import Base


# Async Engine (created once at startup)
async_engine: AsyncEngine | None = None


def get_async_engine() -> AsyncEngine:
    """
    Get or create async database engine

    Returns:
        AsyncEngine instance
    """
    global async_engine

    if async_engine is None:
        async_engine = create_async_engine(
            settings.async_database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,  # Verify connections before using
        )

    return async_engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by request handlers and background indexing."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy-loading issues
        autoflush=False,
    )


async_session_maker = build_session_maker(get_async_engine())


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI routes to get database session

    Commits when the handler returns, rolls back when it raises.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """
    Create product and embedding manifest tables
    """
    async with (engine or get_async_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """
    Close database connections
    Should be called on application shutdown
    """
    global async_engine

    if async_engine is not None:
        await async_engine.dispose()
        async_engine = None

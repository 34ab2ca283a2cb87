"""Database session management."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from polywatch.config import get_settings

from .models import Base


@lru_cache
def get_async_engine() -> AsyncEngine:
    """Get cached async engine.

    Automatically configures for PostgreSQL or SQLite based on database URL.
    """
    settings = get_settings()
    url = settings.database_url or ""

    if settings.is_sqlite:
        # SQLite configuration (no connection pooling)
        return create_async_engine(
            url,
            echo=settings.log_level == "DEBUG",
            connect_args={"check_same_thread": False},
        )

    # PostgreSQL configuration (with connection pooling)
    return create_async_engine(
        url,
        echo=settings.log_level == "DEBUG",
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


@lru_cache
def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get cached async session factory."""
    engine = get_async_engine()
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create missing tables; Alembic remains the source of truth for upgrades."""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Integration test fixtures: a real SQLite database per test."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from polywatch.infrastructure.database import SqlKeyValueStore, create_schema
from tests.conftest import FakeClock


@pytest.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create a SQLite engine on a temporary file with the schema in place."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'polywatch.db'}", echo=False)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(
        sqlite_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def sql_store(session_factory: async_sessionmaker[AsyncSession], clock: FakeClock) -> SqlKeyValueStore:
    """Create a SQL store sharing the test clock."""
    return SqlKeyValueStore(session_factory, clock=clock)

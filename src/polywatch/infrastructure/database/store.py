"""Key-value store implementation using SQLAlchemy."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import KVEntryModel

logger = structlog.get_logger()


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class SqlKeyValueStore:
    """SQLAlchemy implementation of KeyValueStore.

    Every operation runs in its own short transaction so no connection is
    held across network I/O by callers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize store with a session factory."""
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    def _expired(self, expires_at: datetime | None) -> bool:
        return expires_at is not None and _as_utc(expires_at) <= self._clock()

    async def get(self, key: str) -> Any | None:
        """Get a value, or None if absent or expired."""
        async with self._session_factory.begin() as session:
            model = await session.get(KVEntryModel, key)
            if model is None:
                return None
            if self._expired(model.expires_at):
                await session.delete(model)
                logger.debug("Entry expired", key=key)
                return None
            return model.value

    async def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """Store a value (upsert)."""
        now = self._clock()
        values = {
            "key": key,
            "value": value,
            "expires_at": now + ttl if ttl is not None else None,
            "updated_at": now,
        }
        async with self._session_factory.begin() as session:
            dialect = session.bind.dialect.name
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(KVEntryModel).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[KVEntryModel.key],
                set_={
                    "value": stmt.excluded.value,
                    "expires_at": stmt.excluded.expires_at,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)

    async def delete(self, key: str) -> bool:
        """Delete an entry by key."""
        async with self._session_factory.begin() as session:
            result = await session.execute(delete(KVEntryModel).where(KVEntryModel.key == key))
            return bool(result.rowcount)

    async def pop(self, key: str) -> Any | None:
        """Atomically read and remove an entry."""
        stmt = (
            delete(KVEntryModel)
            .where(KVEntryModel.key == key)
            .returning(KVEntryModel.value, KVEntryModel.expires_at)
        )
        async with self._session_factory.begin() as session:
            row = (await session.execute(stmt)).one_or_none()
        if row is None or self._expired(row.expires_at):
            return None
        return row.value

    async def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with ``prefix``."""
        stmt = select(KVEntryModel.key, KVEntryModel.expires_at).order_by(KVEntryModel.key)
        if prefix:
            stmt = stmt.where(KVEntryModel.key.startswith(prefix, autoescape=True))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [row.key for row in rows if not self._expired(row.expires_at)]

"""SQLAlchemy ORM models."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import JSONValue


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class KVEntryModel(Base):
    """Key-value entries - watched projects, queues, backoff and caches."""

    __tablename__ = "kv_entries"
    __table_args__ = (Index("idx_kv_entries_expires_at", "expires_at"),)

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONValue, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        """Return string representation of the entry."""
        return f"<KVEntry {self.key}>"

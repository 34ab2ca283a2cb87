"""Cross-platform SQLAlchemy types for PostgreSQL and SQLite support."""

from typing import Any

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine


class JSONValue(TypeDecorator[Any]):
    """Platform-independent JSON type for arbitrary JSON values.

    Uses PostgreSQL's JSONB when available, otherwise uses JSON.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        """Return dialect-specific type implementation."""
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_JSONB(none_as_null=True))
        return dialect.type_descriptor(JSON(none_as_null=True))

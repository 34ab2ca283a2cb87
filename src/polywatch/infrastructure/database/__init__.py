"""Database infrastructure."""

from .models import Base, KVEntryModel
from .session import create_schema, get_async_engine, get_async_session_factory
from .store import SqlKeyValueStore

__all__ = [
    "Base",
    "KVEntryModel",
    "SqlKeyValueStore",
    "create_schema",
    "get_async_engine",
    "get_async_session_factory",
]

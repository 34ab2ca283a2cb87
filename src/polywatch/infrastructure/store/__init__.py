"""Key-value store implementations."""

from .memory import InMemoryKeyValueStore

__all__ = ["InMemoryKeyValueStore"]

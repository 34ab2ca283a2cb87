"""Key-value store protocol definition."""

from datetime import timedelta
from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Protocol for the generic persistence collaborator.

    Values are JSON-compatible objects. Expired entries behave as absent.
    """

    async def get(self, key: str) -> Any | None:
        """Get a value, or None if absent or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """Store a value, replacing any previous one.

        Args:
            key: Entry key.
            value: JSON-compatible value.
            ttl: Retention after which the entry is discarded unread.

        """
        ...

    async def delete(self, key: str) -> bool:
        """Delete an entry. Returns True if something was removed."""
        ...

    async def pop(self, key: str) -> Any | None:
        """Atomically read and remove an entry."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with ``prefix``."""
        ...

"""In-memory key-value store implementation."""

import asyncio
import copy
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

logger = structlog.get_logger()


class InMemoryKeyValueStore:
    """In-memory key-value store with per-entry expiry.

    This implementation is suitable for single-process deployments and tests.
    For durable state, use SqlKeyValueStore.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize the store.

        Args:
            clock: Source of the current time, used for expiry checks.

        """
        self._clock = clock or (lambda: datetime.now(UTC))
        self._data: dict[str, tuple[Any, datetime | None]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            logger.debug("Entry expired", key=key)
            return None
        return value

    async def get(self, key: str) -> Any | None:
        """Get a copy of a value, or None if absent or expired."""
        async with self._lock:
            return copy.deepcopy(self._live(key))

    async def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """Store a copy of a value."""
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            self._data[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> bool:
        """Delete an entry."""
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def pop(self, key: str) -> Any | None:
        """Atomically read and remove an entry."""
        async with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    async def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with ``prefix``."""
        async with self._lock:
            candidates = [k for k in self._data if k.startswith(prefix)]
            return sorted(k for k in candidates if self._live(k) is not None)

"""Per-project and global scrape cooldowns."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from polywatch.application.ports.store import KeyValueStore
from polywatch.domain.models import ProjectKey

logger = structlog.get_logger()

BACKOFF_PREFIX = "backoff:"
GLOBAL_BACKOFF_KEY = "backoff:global"


class BackoffStore:
    """Cooldown entries kept in a KeyValueStore.

    Each entry holds the ISO timestamp until which scraping is blocked and
    expires from the store shortly after, so stale entries need no cleanup.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] | None = None,
        min_seconds: int = 60,
    ) -> None:
        """Initialize the backoff store.

        Args:
            store: Backing key-value store.
            clock: Source of the current time.
            min_seconds: Lower bound applied to every cooldown.

        """
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._min_seconds = min_seconds

    @staticmethod
    def _key(key: ProjectKey) -> str:
        return f"{BACKOFF_PREFIX}{key.storage_key}"

    async def _is_blocked(self, store_key: str) -> bool:
        value = await self._store.get(store_key)
        if value is None:
            return False
        return self._clock() < datetime.fromisoformat(value)

    async def _block(self, store_key: str, seconds: int) -> datetime:
        duration = max(self._min_seconds, seconds)
        until = self._clock() + timedelta(seconds=duration)
        await self._store.set(store_key, until.isoformat(), ttl=timedelta(seconds=duration + 60))
        return until

    async def is_blocked(self, key: ProjectKey) -> bool:
        """Check whether scraping ``key`` is in cooldown."""
        return await self._is_blocked(self._key(key))

    async def block(self, key: ProjectKey, seconds: int) -> datetime:
        """Block ``key`` for at least ``min_seconds``.

        Returns:
            The moment the cooldown ends.

        """
        until = await self._block(self._key(key), seconds)
        logger.info("Backoff set", scope="project", project=key.storage_key, until=until.isoformat())
        return until

    async def is_globally_blocked(self) -> bool:
        """Check whether all scraping is in cooldown."""
        return await self._is_blocked(GLOBAL_BACKOFF_KEY)

    async def block_global(self, seconds: int) -> datetime:
        """Block every scrape regardless of key."""
        until = await self._block(GLOBAL_BACKOFF_KEY, seconds)
        logger.warning("Backoff set", scope="global", until=until.isoformat())
        return until

    async def blocked_count(self) -> int:
        """Count project cooldowns still active."""
        count = 0
        for store_key in await self._store.keys(BACKOFF_PREFIX):
            if store_key != GLOBAL_BACKOFF_KEY and await self._is_blocked(store_key):
                count += 1
        return count

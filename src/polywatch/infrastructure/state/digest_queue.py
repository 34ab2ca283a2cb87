"""Per-channel digest queues."""

import asyncio
from collections import defaultdict
from datetime import timedelta

import structlog

from polywatch.application.ports.store import KeyValueStore
from polywatch.domain.models import DigestQueueItem

logger = structlog.get_logger()

QUEUE_PREFIX = "digest:queue:"


class DigestQueue:
    """Queues of rendered changes waiting for their channel's digest.

    Enqueue and drain for one channel are serialized so that a drain never
    loses or duplicates an item appended concurrently.
    """

    def __init__(self, store: KeyValueStore, ttl: timedelta = timedelta(hours=12)) -> None:
        """Initialize the queue.

        Args:
            store: Backing key-value store.
            ttl: Retention after the last enqueue; stale queues are discarded unread.

        """
        self._store = store
        self._ttl = ttl
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def _key(channel_id: str) -> str:
        return f"{QUEUE_PREFIX}{channel_id}"

    async def enqueue(self, channel_id: str, item: DigestQueueItem) -> int:
        """Append an item, creating the queue if absent.

        Returns:
            Queue length after the append.

        """
        async with self._locks[channel_id]:
            items = await self._store.get(self._key(channel_id)) or []
            items.append(item.to_dict())
            await self._store.set(self._key(channel_id), items, ttl=self._ttl)
        logger.debug("Digest item queued", channel=channel_id, queue_size=len(items))
        return len(items)

    async def drain(self, channel_id: str) -> list[DigestQueueItem]:
        """Atomically read and clear a channel's queue."""
        async with self._locks[channel_id]:
            raw = await self._store.pop(self._key(channel_id)) or []
        return [DigestQueueItem.from_dict(data) for data in raw]

    async def size(self, channel_id: str) -> int:
        """Number of items waiting in a channel's queue."""
        return len(await self._store.get(self._key(channel_id)) or [])

"""Digest scheduler - flushes per-channel digest queues when they are due."""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog

from polywatch.application.ports.notifier import NotificationError, Notifier
from polywatch.application.ports.store import KeyValueStore
from polywatch.domain.enums import DigestKind
from polywatch.domain.models import RuntimeSettings, WebhookConfig
from polywatch.infrastructure.slack.formatter import format_digest
from polywatch.infrastructure.state.digest_queue import DigestQueue

logger = structlog.get_logger()

LAST_FLUSH_PREFIX = "digest:last_flush:"
MINUTES_PER_DAY = 24 * 60


class DigestScheduler:
    """Decides which digest channels are due and flushes them.

    Each channel is Idle until due, then Draining, then Idle again. A failed
    send is not retried; the next window picks up whatever is queued then.
    """

    def __init__(
        self,
        queue: DigestQueue,
        notifier: Notifier,
        store: KeyValueStore,
        timezone: str = "UTC",
        window_minutes: int = 15,
        max_items: int = 20,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            queue: Per-channel digest queues.
            notifier: Outbound channel for bulk messages.
            store: Holds the last flush time of each channel.
            timezone: Timezone fixed-time digests are expressed in.
            window_minutes: Acceptance window after a fixed time.
            max_items: Lines shown in one bulk message.
            clock: Source of the current time.

        """
        self._queue = queue
        self._notifier = notifier
        self._store = store
        self._tz = ZoneInfo(timezone)
        self._window = window_minutes
        self._max_items = max_items
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def tick(self, runtime: RuntimeSettings, now: datetime | None = None) -> dict[str, int]:
        """Flush every digest channel that is due.

        Returns:
            Items sent per flushed channel.

        """
        now = now or self._clock()
        flushed: dict[str, int] = {}
        for config in runtime.digest_channels():
            async with self._locks[config.channel_id]:
                if not await self._claim(config, now):
                    continue
            count = await self.flush(config)
            if count:
                flushed[config.channel_id] = count
        return flushed

    async def _claim(self, config: WebhookConfig, now: datetime) -> bool:
        """Check due-ness and record the flush time before draining."""
        if not await self.is_due(config, now):
            return False
        if await self._queue.size(config.channel_id) == 0:
            logger.debug("Digest due but queue empty", channel=config.channel_id)
            return False
        await self._store.set(self._last_flush_key(config.channel_id), now.isoformat())
        return True

    async def is_due(self, config: WebhookConfig, now: datetime) -> bool:
        """Check whether a channel's digest window is open."""
        last_flush = await self.last_flush(config.channel_id)
        schedule = config.digest

        if schedule.kind is DigestKind.INTERVAL:
            if last_flush is None:
                return True
            return (now - last_flush).total_seconds() > schedule.minutes * 60

        # Fixed time: inside [hh:mm, hh:mm + window) local time, once per window.
        local = now.astimezone(self._tz)
        hours, minutes = (int(part) for part in schedule.hhmm.split(":"))
        elapsed = (local.hour * 60 + local.minute - (hours * 60 + minutes)) % MINUTES_PER_DAY
        if elapsed >= self._window:
            return False
        window_start = local.replace(second=0, microsecond=0) - timedelta(minutes=elapsed)
        return last_flush is None or last_flush < window_start

    async def flush(self, config: WebhookConfig) -> int:
        """Drain a channel's queue and send it as one bulk message.

        Returns:
            Number of items drained; 0 when the queue was empty.

        """
        if not config.url:
            logger.warning("Digest channel has no usable webhook URL", channel=config.channel_id)
            return 0

        items = await self._queue.drain(config.channel_id)
        if not items:
            return 0

        log = logger.bind(channel=config.channel_id, items=len(items))
        text, payload = format_digest(items, config.channel_id, self._max_items)
        try:
            sent = await self._notifier.send_override(text, config.url, payload)
        except NotificationError as e:
            log.warning("Digest send failed", error=str(e))
            return len(items)
        if sent:
            log.info("Digest flushed")
        else:
            log.warning("Digest rejected")
        return len(items)

    async def last_flush(self, channel_id: str) -> datetime | None:
        """Last time a channel was flushed."""
        value = await self._store.get(self._last_flush_key(channel_id))
        return datetime.fromisoformat(value) if value else None

    @staticmethod
    def _last_flush_key(channel_id: str) -> str:
        return f"{LAST_FLUSH_PREFIX}{channel_id}"

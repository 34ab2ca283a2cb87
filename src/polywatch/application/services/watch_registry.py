"""Watch registry - the set of projects under surveillance."""

import asyncio
import random
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from polywatch.application.ports.scraper import Scraper
from polywatch.application.ports.store import KeyValueStore
from polywatch.domain.enums import SurveillanceIssue
from polywatch.domain.models import ProjectKey, ScrapeError, Snapshot, WatchedProject, WatchResult

logger = structlog.get_logger()

WATCH_PREFIX = "watch:"
MIN_RECHECK_SECONDS = 60


class WatchRegistry:
    """Owns WatchedProject entries and their check schedule.

    Entries are only admitted after a successful trial scrape and only
    updated through ``commit`` once a full scrape and dispatch cycle is done.
    """

    def __init__(
        self,
        store: KeyValueStore,
        scraper: Scraper,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        jitter_seconds: int = 300,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Backing key-value store.
            scraper: Used for the admission trial scrape.
            rng: Random source for due-set shuffling and recheck jitter.
            clock: Source of the current time.
            jitter_seconds: Upper bound of the random delay added to each recheck.

        """
        self._store = store
        self._scraper = scraper
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._jitter_seconds = jitter_seconds
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def _key(key: ProjectKey) -> str:
        return f"{WATCH_PREFIX}{key.storage_key}"

    async def watch(self, key: ProjectKey) -> WatchResult:
        """Start watching a project after a trial scrape.

        The new entry has no snapshot and is due immediately, so the first
        check reports it as a new project.
        """
        log = logger.bind(project=key.storage_key)
        if await self.get(key) is not None:
            log.debug("Project already watched")
            return WatchResult(ok=True)

        result = await self._scraper.fetch(key)
        if isinstance(result, ScrapeError):
            log.warning("Watch rejected", kind=result.kind.value, detail=result.detail)
            return WatchResult(ok=False, issue=SurveillanceIssue.API_ERROR, detail=result.kind.value)

        now = self._clock()
        entry = WatchedProject(
            key=key,
            added_at=now,
            next_check_at=now,
            project_type_label=(result.project_type or key.type).value,
        )
        async with self._locks[key.storage_key]:
            await self._store.set(self._key(key), entry.to_dict())
        log.info("Project watched")
        return WatchResult(ok=True)

    async def unwatch(self, key: ProjectKey) -> bool:
        """Stop watching a project. Removing an absent key is not an error.

        Returns:
            True if an entry was removed.

        """
        async with self._locks[key.storage_key]:
            removed = await self._store.delete(self._key(key))
        if removed:
            logger.info("Project unwatched", project=key.storage_key)
        return removed

    async def get(self, key: ProjectKey) -> WatchedProject | None:
        """Get one entry."""
        data = await self._store.get(self._key(key))
        return WatchedProject.from_dict(data) if data else None

    async def list_all(self) -> list[WatchedProject]:
        """Get every entry, ordered by key."""
        entries = []
        for store_key in await self._store.keys(WATCH_PREFIX):
            data = await self._store.get(store_key)
            if data:
                entries.append(WatchedProject.from_dict(data))
        return entries

    async def count(self) -> int:
        """Number of watched projects."""
        return len(await self._store.keys(WATCH_PREFIX))

    async def select_due(self, now: datetime, capacity: int) -> list[WatchedProject]:
        """Pick at most ``capacity`` due entries in random order.

        Shuffling before truncation keeps any single project from being
        starved when more projects are due than one tick can handle.
        """
        due = [entry for entry in await self.list_all() if entry.next_check_at <= now]
        self._rng.shuffle(due)
        selected = due[: max(0, capacity)]
        logger.debug("Due projects selected", due=len(due), selected=len(selected))
        return selected

    async def commit(
        self,
        key: ProjectKey,
        snapshot: Snapshot,
        checked_at: datetime,
        interval_minutes: int,
    ) -> WatchedProject | None:
        """Store a new snapshot and schedule the next check.

        Returns:
            The updated entry, or None if the project was unwatched meanwhile.

        """
        async with self._locks[key.storage_key]:
            current = await self.get(key)
            if current is None:
                logger.info("Commit skipped, project no longer watched", project=key.storage_key)
                return None
            delay = max(MIN_RECHECK_SECONDS, interval_minutes * 60) + self._rng.randint(0, self._jitter_seconds)
            updated = WatchedProject(
                key=key,
                added_at=current.added_at,
                next_check_at=checked_at + timedelta(seconds=delay),
                last_checked_at=checked_at,
                last_snapshot=snapshot,
                project_type_label=(snapshot.project_type or key.type).value,
            )
            await self._store.set(self._key(key), updated.to_dict())
        return updated

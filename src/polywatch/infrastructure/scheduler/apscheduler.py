"""APScheduler 4 wrapper for the scrape and digest ticks."""

from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from apscheduler import AsyncScheduler, CoalescePolicy, ConflictPolicy
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()

# Type alias for job functions
JobFunc = Callable[..., Coroutine[Any, Any, Any]]

SURVEILLANCE_SCHEDULE_ID = "surveillance-tick"
DIGEST_SCHEDULE_ID = "digest-tick"


class TickScheduler:
    """Scheduler wrapper firing the scrape tick and the digest tick.

    Both ticks share one cadence. Missed runs are coalesced into one and a
    new registration replaces the previous one with the same id.
    """

    def __init__(self, scrape_job: JobFunc, digest_job: JobFunc) -> None:
        """Initialize the scheduler.

        Args:
            scrape_job: Module-level coroutine running one scrape tick.
            digest_job: Module-level coroutine running one digest tick.

        """
        self._scrape_job = scrape_job
        self._digest_job = digest_job
        self._scheduler: AsyncScheduler | None = None
        self._interval: int | None = None

    async def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            logger.warning("Scheduler already started")
            return

        self._scheduler = AsyncScheduler()
        await self._scheduler.__aenter__()
        await self._scheduler.start_in_background()
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is None:
            return

        await self._scheduler.__aexit__(None, None, None)
        self._scheduler = None
        self._interval = None
        logger.info("Scheduler stopped")

    async def schedule_ticks(self, interval_minutes: int) -> None:
        """Register both ticks every ``interval_minutes``.

        Args:
            interval_minutes: Tick cadence in minutes.

        """
        if self._scheduler is None:
            msg = "Scheduler not started"
            raise RuntimeError(msg)

        for schedule_id, job in (
            (SURVEILLANCE_SCHEDULE_ID, self._scrape_job),
            (DIGEST_SCHEDULE_ID, self._digest_job),
        ):
            await self._scheduler.add_schedule(
                job,
                IntervalTrigger(minutes=interval_minutes),
                id=schedule_id,
                conflict_policy=ConflictPolicy.replace,
                coalesce=CoalescePolicy.latest,
            )

        self._interval = interval_minutes
        logger.info("Ticks scheduled", interval_minutes=interval_minutes)

    async def reschedule(self, interval_minutes: int) -> None:
        """Realign both ticks when the cadence changes."""
        if interval_minutes == self._interval:
            return
        await self.schedule_ticks(interval_minutes)

    @property
    def interval(self) -> int | None:
        """Current cadence in minutes, if scheduled."""
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler is not None

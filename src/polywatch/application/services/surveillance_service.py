"""Surveillance service - runs scrape and digest ticks."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from polywatch.application.ports.notifier import NotificationError, Notifier
from polywatch.application.ports.scraper import Scraper
from polywatch.application.ports.store import KeyValueStore
from polywatch.config import Settings
from polywatch.domain.changes import detect_changes
from polywatch.domain.enums import SurveillanceIssue
from polywatch.domain.models import RuntimeSettings, ScrapeError, WatchedProject, WatchResult
from polywatch.infrastructure.state.settings_repository import SettingsRepository

from .digest_scheduler import DigestScheduler
from .notification_router import NotificationRouter
from .watch_registry import WatchRegistry

logger = structlog.get_logger()

ABORT_KEY = "control:abort"
SCRAPE_RUN_KEY = "runs:scrape"
DIGEST_RUN_KEY = "runs:digest"


@dataclass(slots=True)
class TickReport:
    """Outcome of one scrape tick, filled in as projects complete."""

    started_at: datetime
    duration_ms: int = 0
    forced: bool = False
    skipped: bool = False
    due: int = 0
    processed: int = 0
    succeeded: int = 0
    events_detected: int = 0
    notifications: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    aborted: bool = False
    timed_out: bool = False
    issue: SurveillanceIssue | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["issue"] = self.issue.value if self.issue else None
        return data


@dataclass(slots=True)
class DigestTickReport:
    """Outcome of one digest tick."""

    started_at: datetime
    duration_ms: int = 0
    skipped: bool = False
    flushed: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class SurveillanceService:
    """Entry points the scheduler and the API call.

    One scrape tick:
    1. Load the runtime settings snapshot
    2. Select due projects (shuffled, capped)
    3. For each project, under a small concurrency limit: scrape, detect
       changes, dispatch them, commit the snapshot
    4. Record the run in the ledger
    """

    def __init__(
        self,
        settings: Settings,
        settings_repository: SettingsRepository,
        store: KeyValueStore,
        registry: WatchRegistry,
        scraper: Scraper,
        router: NotificationRouter,
        digests: DigestScheduler,
        notifier: Notifier,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the surveillance service.

        Args:
            settings: Static settings (concurrency, tick ceiling).
            settings_repository: Source of the per-tick runtime settings.
            store: Holds the abort flag and the run ledger.
            registry: Watched projects.
            scraper: Statistics source.
            router: Event delivery.
            digests: Digest flushing.
            notifier: Outbound channel, used for the self-test.
            clock: Source of the current time.

        """
        self._settings = settings
        self._settings_repository = settings_repository
        self._store = store
        self._registry = registry
        self._scraper = scraper
        self._router = router
        self._digests = digests
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tick_lock = asyncio.Lock()

    async def run_scrape_tick(self, *, force: bool = False) -> TickReport:
        """Check due projects and dispatch their changes.

        Only one scrape tick runs at a time; a tick started while another is
        in progress is skipped. The tick is cut off after
        ``tick_timeout_seconds`` or one tick interval, whichever is shorter.

        Args:
            force: Run even when surveillance is disabled.

        Returns:
            Report of the tick; failures are recorded, never raised.

        """
        if self._tick_lock.locked():
            logger.info("Scrape tick skipped, another tick is running", forced=force)
            return TickReport(started_at=self._clock(), forced=force, skipped=True)
        async with self._tick_lock:
            return await self._run_scrape_tick(force)

    async def _run_scrape_tick(self, force: bool) -> TickReport:
        started_at = self._clock()
        start = time.perf_counter()
        report = TickReport(started_at=started_at, forced=force)
        runtime = await self._settings_repository.load()

        if not runtime.surveillance_enabled and not force:
            logger.info("Scrape tick skipped, surveillance disabled")
            report.skipped = True
            return report

        due = await self._registry.select_due(started_at, runtime.max_projects_per_check)
        report.due = len(due)
        log = logger.bind(due=len(due), forced=force)
        log.info("Scrape tick started")

        if not due and force and await self._registry.count() == 0:
            report.issue = SurveillanceIssue.NO_PROJECTS

        # A tick never outlives its interval.
        ceiling = min(self._settings.tick_timeout_seconds, runtime.surveillance_interval * 60)
        semaphore = asyncio.Semaphore(self._settings.worker_concurrency)
        try:
            async with asyncio.timeout(ceiling):
                async with asyncio.TaskGroup() as group:
                    for project in due:
                        group.create_task(self._check_guarded(project, runtime, report, semaphore))
        except TimeoutError:
            report.timed_out = True
            log.warning("Scrape tick timed out, in-flight checks cancelled")
        finally:
            await self._store.delete(ABORT_KEY)

        report.duration_ms = int((time.perf_counter() - start) * 1000)
        await self._store.set(SCRAPE_RUN_KEY, report.to_dict())
        log.info(
            "Scrape tick finished",
            processed=report.processed,
            failed=len(report.failures),
            events=report.events_detected,
            duration_ms=report.duration_ms,
            aborted=report.aborted,
        )
        return report

    async def _check_guarded(
        self,
        project: WatchedProject,
        runtime: RuntimeSettings,
        report: TickReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            if report.aborted or await self._store.get(ABORT_KEY):
                if not report.aborted:
                    logger.info("Scrape tick aborted by operator")
                report.aborted = True
                return
            try:
                await self._check(project, runtime, report)
            except Exception as e:
                logger.exception("Project check failed", project=project.key.storage_key, error=str(e))
                report.failures[project.key.storage_key] = "unexpected_error"
            finally:
                report.processed += 1

    async def _check(self, project: WatchedProject, runtime: RuntimeSettings, report: TickReport) -> None:
        key = project.key
        result = await self._scraper.fetch(key)
        if isinstance(result, ScrapeError):
            report.failures[key.storage_key] = result.kind.value
            return

        events = detect_changes(project.last_snapshot, result, runtime.policy_for(key.locale))
        if events:
            logger.info(
                "Changes detected",
                project=key.storage_key,
                events=[event.change_type.value for event in events],
            )
        configs = runtime.webhooks_for(key.locale)
        for event in events:
            report.notifications += await self._router.dispatch(event, key, configs)

        await self._registry.commit(key, result, self._clock(), runtime.surveillance_interval)
        report.succeeded += 1
        report.events_detected += len(events)

    async def run_digest_tick(self) -> DigestTickReport:
        """Flush every digest channel that is due."""
        started_at = self._clock()
        start = time.perf_counter()
        report = DigestTickReport(started_at=started_at)
        runtime = await self._settings_repository.load()

        if not runtime.surveillance_enabled:
            logger.info("Digest tick skipped, surveillance disabled")
            report.skipped = True
            return report
        if await self._store.get(ABORT_KEY):
            logger.info("Digest tick skipped, abort requested")
            report.skipped = True
            return report

        report.flushed = await self._digests.tick(runtime, started_at)
        report.duration_ms = int((time.perf_counter() - start) * 1000)
        await self._store.set(DIGEST_RUN_KEY, report.to_dict())
        logger.info("Digest tick finished", flushed=report.flushed, duration_ms=report.duration_ms)
        return report

    async def request_abort(self) -> None:
        """Ask the running tick to stop before its next project."""
        await self._store.set(ABORT_KEY, True)
        logger.info("Abort requested")

    async def test_notifier(self) -> WatchResult:
        """Send a test message to the default channel."""
        if not self._notifier.is_ready():
            return WatchResult(ok=False, issue=SurveillanceIssue.SLACK_NOT_READY)
        try:
            sent = await self._notifier.send_test()
        except NotificationError as e:
            logger.warning("Test notification failed", error=str(e))
            return WatchResult(ok=False, issue=SurveillanceIssue.SLACK_SEND_ERROR, detail=e.error_type)
        if not sent:
            return WatchResult(ok=False, issue=SurveillanceIssue.SLACK_SEND_ERROR)
        return WatchResult(ok=True)

    async def status(self) -> dict[str, Any]:
        """Last runs, watched count and abort flag."""
        return {
            "watched": await self._registry.count(),
            "abort_requested": bool(await self._store.get(ABORT_KEY)),
            "last_scrape": await self._store.get(SCRAPE_RUN_KEY),
            "last_digest": await self._store.get(DIGEST_RUN_KEY),
        }

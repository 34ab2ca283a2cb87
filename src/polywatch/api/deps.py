"""FastAPI dependencies for dependency injection."""

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Annotated

import httpx
from fastapi import Depends

from polywatch.application.ports.store import KeyValueStore
from polywatch.application.services import (
    DigestScheduler,
    NotificationRouter,
    SurveillanceService,
    WatchRegistry,
)
from polywatch.config import Settings
from polywatch.infrastructure.scheduler import TickScheduler
from polywatch.infrastructure.slack.notifier import SlackNotifier
from polywatch.infrastructure.state.backoff import BackoffStore
from polywatch.infrastructure.state.digest_queue import DigestQueue
from polywatch.infrastructure.state.segments import SegmentCache
from polywatch.infrastructure.state.settings_repository import SettingsRepository
from polywatch.infrastructure.translate.scraper import TranslationScraper


@dataclass(slots=True)
class Services:
    """Wired application services sharing one key-value store."""

    settings: Settings
    store: KeyValueStore
    backoff: BackoffStore
    scraper: TranslationScraper
    notifier: SlackNotifier
    settings_repository: SettingsRepository
    registry: WatchRegistry
    surveillance: SurveillanceService

    async def close(self) -> None:
        """Close HTTP clients."""
        await self.scraper.close()
        await self.notifier.close()


def build_services(
    settings: Settings,
    store: KeyValueStore,
    *,
    scraper_client: httpx.AsyncClient | None = None,
    slack_client: httpx.AsyncClient | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    """Wire every service over ``store``.

    Args:
        settings: Application settings.
        store: Persistence for watches, queues, backoff and caches.
        scraper_client: Optional HTTP client for the translation API.
        slack_client: Optional HTTP client for Slack.
        rng: Random source for shuffling and jitter.
        clock: Source of the current time.

    Returns:
        Wired services.

    """
    clock = clock or (lambda: datetime.now(UTC))
    backoff = BackoffStore(store, clock=clock, min_seconds=settings.backoff_min_seconds)
    scraper = TranslationScraper(settings, backoff, SegmentCache(store), client=scraper_client, clock=clock)
    notifier = SlackNotifier(settings, client=slack_client)
    queue = DigestQueue(store, ttl=timedelta(hours=settings.digest_queue_ttl_hours))
    settings_repository = SettingsRepository(store, settings)
    registry = WatchRegistry(
        store,
        scraper,
        rng=rng,
        clock=clock,
        jitter_seconds=settings.recheck_jitter_seconds,
    )
    router = NotificationRouter(
        queue,
        notifier,
        site_base_url=settings.site_base_url,
        translation_set=settings.translation_set,
        clock=clock,
    )
    digests = DigestScheduler(
        queue,
        notifier,
        store,
        timezone=settings.default_timezone,
        window_minutes=settings.digest_window_minutes,
        max_items=settings.digest_max_items,
        clock=clock,
    )
    surveillance = SurveillanceService(
        settings,
        settings_repository,
        store,
        registry,
        scraper,
        router,
        digests,
        notifier,
        clock=clock,
    )
    return Services(
        settings=settings,
        store=store,
        backoff=backoff,
        scraper=scraper,
        notifier=notifier,
        settings_repository=settings_repository,
        registry=registry,
        surveillance=surveillance,
    )


# Application state container
class _AppState:
    """Container for application-level state."""

    services: Services | None = None
    scheduler: TickScheduler | None = None


_state = _AppState()


def get_services() -> Services:
    """Get the wired services."""
    if _state.services is None:
        msg = "Services not initialized"
        raise RuntimeError(msg)
    return _state.services


def set_services(services: Services | None) -> None:
    """Set the wired services."""
    _state.services = services


def get_scheduler() -> TickScheduler | None:
    """Get the scheduler instance."""
    return _state.scheduler


def set_scheduler(scheduler: TickScheduler | None) -> None:
    """Set the scheduler instance."""
    _state.scheduler = scheduler


def get_surveillance_service() -> SurveillanceService:
    """Get the surveillance service."""
    return get_services().surveillance


def get_watch_registry() -> WatchRegistry:
    """Get the watch registry."""
    return get_services().registry


def get_settings_repository() -> SettingsRepository:
    """Get the notification settings repository."""
    return get_services().settings_repository


# Type aliases for dependency injection
ServicesDep = Annotated[Services, Depends(get_services)]
SurveillanceDep = Annotated[SurveillanceService, Depends(get_surveillance_service)]
RegistryDep = Annotated[WatchRegistry, Depends(get_watch_registry)]
SettingsRepoDep = Annotated[SettingsRepository, Depends(get_settings_repository)]
SchedulerDep = Annotated[TickScheduler | None, Depends(get_scheduler)]

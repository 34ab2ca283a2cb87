"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from polywatch import __version__
from polywatch.config import get_settings
from polywatch.infrastructure.database import SqlKeyValueStore, create_schema, get_async_session_factory
from polywatch.infrastructure.scheduler import TickScheduler

from . import jobs
from .deps import build_services, set_scheduler, set_services
from .routes import health, runs, settings, watches

# Type alias to work around Starlette type system issue
_CORSMiddleware: Any = CORSMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan manager."""
    app_settings = get_settings()

    logger.info(
        "Starting Polywatch",
        version=__version__,
        api_host=app_settings.api_host,
        api_port=app_settings.api_port,
    )

    await create_schema()
    store = SqlKeyValueStore(get_async_session_factory())
    services = build_services(app_settings, store)
    set_services(services)

    if not services.notifier.is_ready():
        logger.warning("Default Slack webhook not configured, notifications need per-channel URLs")

    scheduler = TickScheduler(jobs.run_scrape_tick, jobs.run_digest_tick)
    await scheduler.start()
    runtime = await services.settings_repository.load()
    await scheduler.schedule_ticks(runtime.surveillance_interval)
    set_scheduler(scheduler)

    yield

    # Cleanup
    logger.info("Shutting down Polywatch")

    await scheduler.stop()
    await services.close()

    set_scheduler(None)
    set_services(None)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Polywatch",
        description="Translation progress watcher with Slack notifications",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        _CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(health.router)
    app.include_router(watches.router, prefix="/api/v1")
    app.include_router(runs.router, prefix="/api/v1")
    app.include_router(settings.router, prefix="/api/v1")

    return app


# Application instance for uvicorn
app = create_app()

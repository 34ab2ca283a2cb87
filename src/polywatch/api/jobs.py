"""Scheduled job functions.

APScheduler stores jobs by reference, so these are plain module-level
coroutines that look up the wired services at run time.
"""

import structlog

from .deps import get_services

logger = structlog.get_logger()


async def run_scrape_tick() -> None:
    """Scheduled scrape tick."""
    services = get_services()
    report = await services.surveillance.run_scrape_tick(force=False)
    logger.debug("Scheduled scrape tick done", processed=report.processed, skipped=report.skipped)


async def run_digest_tick() -> None:
    """Scheduled digest tick."""
    services = get_services()
    report = await services.surveillance.run_digest_tick()
    logger.debug("Scheduled digest tick done", flushed=report.flushed, skipped=report.skipped)

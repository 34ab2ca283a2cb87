"""Scraper protocol definition."""

from typing import Protocol

from polywatch.domain.models import ProjectKey, ScrapeResult


class Scraper(Protocol):
    """Protocol for translation statistics scrapers.

    Every outcome is returned as a value: a Snapshot on success, a
    ScrapeError otherwise. Implementations never raise for remote failures.
    """

    async def fetch(self, key: ProjectKey) -> ScrapeResult:
        """Fetch the current statistics for one project and locale."""
        ...

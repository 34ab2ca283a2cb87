"""Translation statistics scraper for translate.wordpress.org."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from polywatch.config import Settings
from polywatch.domain.enums import ScrapeErrorKind
from polywatch.domain.models import ProjectKey, ScrapeError, ScrapeResult, Snapshot
from polywatch.infrastructure.state.backoff import BackoffStore
from polywatch.infrastructure.state.segments import SegmentCache

from .segments import SegmentResolver, build_stats_url

logger = structlog.get_logger()


class TranslationScraper:
    """Fetches translation statistics and turns them into snapshots.

    Every outcome is a value. Remote failures put the project in backoff and
    come back as ScrapeError; nothing here raises for HTTP or decoding issues.
    """

    def __init__(
        self,
        settings: Settings,
        backoff: BackoffStore,
        segments: SegmentCache,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scraper.

        Args:
            settings: Application settings (URLs, timeouts, backoff bounds).
            backoff: Cooldown store consulted before every request.
            segments: Memoized segment resolutions.
            client: Optional HTTP client; created on first use when omitted.
            clock: Source of the snapshot timestamp.

        """
        self._settings = settings
        self._backoff = backoff
        self._segments = segments
        self._client = client
        self._clock = clock or (lambda: datetime.now(UTC))

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client.

        Returns:
            Configured httpx AsyncClient.

        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.request_timeout),
                follow_redirects=True,
                headers={
                    "User-Agent": self._settings.user_agent,
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, key: ProjectKey) -> ScrapeResult:
        """Fetch the current statistics for one project and locale.

        Args:
            key: Watched project key; its type may be corrected by segment
                resolution before the request is built.

        Returns:
            Snapshot on success, ScrapeError otherwise.

        """
        log = logger.bind(project=key.storage_key)

        if await self._backoff.is_globally_blocked():
            log.debug("Scrape skipped, global backoff active")
            return ScrapeError(ScrapeErrorKind.BACKOFF_ACTIVE, "global backoff active")
        if await self._backoff.is_blocked(key):
            log.debug("Scrape skipped, backoff active")
            return ScrapeError(ScrapeErrorKind.BACKOFF_ACTIVE, "project backoff active")

        client = await self.get_client()
        translation_set = self._settings.translation_set
        resolver = SegmentResolver(self._segments, self._settings.api_base_url, client)
        resolved = await resolver.resolve(key, translation_set)
        request_key = key.with_type(resolved) if resolved is not None else key

        url = build_stats_url(self._settings.api_base_url, request_key, translation_set)
        log.info("Scrape started", url=url)
        response = await self._get_with_retry(client, url)

        if response is None:
            await self._backoff.block(key, self._settings.backoff_default_seconds)
            log.warning("Scrape failed", kind=ScrapeErrorKind.TRANSPORT.value)
            return ScrapeError(ScrapeErrorKind.TRANSPORT, f"request to {url} failed")

        if response.status_code != 200:
            return await self._handle_status(key, response, resolved_known=resolved is not None)

        try:
            payload = response.json()
        except ValueError as e:
            log.warning("Scrape failed", kind=ScrapeErrorKind.DECODE.value, error=str(e))
            return ScrapeError(ScrapeErrorKind.DECODE, "response is not valid JSON")

        result = self._parse(payload, request_key)
        if isinstance(result, ScrapeError):
            log.warning("Scrape failed", kind=result.kind.value, detail=result.detail)
        else:
            log.info(
                "Scrape succeeded",
                completion_pct=str(result.completion_pct),
                total=result.total,
            )
        return result

    async def _get_with_retry(self, client: httpx.AsyncClient, url: str) -> httpx.Response | None:
        """GET once, retrying once after a short pause on 5xx or network failure."""
        response = await self._get(client, url)
        if response is None or response.status_code >= 500:
            await asyncio.sleep(self._settings.retry_pause_seconds)
            response = await self._get(client, url)
        return response

    @staticmethod
    async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response | None:
        try:
            return await client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Request failed", url=url, error=str(e))
            return None

    async def _handle_status(self, key: ProjectKey, response: httpx.Response, *, resolved_known: bool) -> ScrapeError:
        status = response.status_code
        seconds = self._settings.backoff_default_seconds
        if status == 429:
            retry_after = self._retry_after(response)
            if retry_after is not None:
                seconds = min(retry_after, self._settings.backoff_max_seconds)
            await self._backoff.block_global(seconds)
        await self._backoff.block(key, seconds)

        if status == 404 and not resolved_known:
            kind = ScrapeErrorKind.SEGMENT_UNRESOLVED
            detail = "no segment matched and the fallback request returned 404"
        else:
            kind = ScrapeErrorKind.HTTP_STATUS
            detail = f"HTTP {status}"
        logger.warning("Scrape failed", project=key.storage_key, kind=kind.value, status=status, backoff_seconds=seconds)
        return ScrapeError(kind, detail, status_code=status)

    @staticmethod
    def _retry_after(response: httpx.Response) -> int | None:
        value = response.headers.get("Retry-After", "").strip()
        if value.isdigit() and int(value) > 0:
            return int(value)
        return None

    def _parse(self, payload: Any, key: ProjectKey) -> ScrapeResult:
        """Build a snapshot from the first translation set, ignoring remote percentages."""
        if not isinstance(payload, dict):
            return ScrapeError(ScrapeErrorKind.DECODE, "unexpected response shape")
        sets = payload.get("translation_sets")
        if not isinstance(sets, list) or not sets or not isinstance(sets[0], dict):
            return ScrapeError(ScrapeErrorKind.NO_TRANSLATION_SET, "no translation set in response")

        entry = sets[0]
        try:
            return Snapshot(
                translated=int(entry.get("translated") or 0),
                untranslated=int(entry.get("untranslated") or 0),
                fuzzy=int(entry.get("fuzzy") or 0),
                waiting=int(entry.get("waiting") or 0),
                fetched_at=self._clock(),
                project_type=key.type,
                project_name=str(entry.get("name") or key.slug),
                locale_name=str(entry.get("locale") or key.locale),
            )
        except (TypeError, ValueError) as e:
            return ScrapeError(ScrapeErrorKind.DECODE, f"invalid counters: {e}")

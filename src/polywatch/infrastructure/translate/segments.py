"""Resolution of the API segment a project actually lives under."""

import httpx
import structlog

from polywatch.domain.enums import ProjectType
from polywatch.domain.models import ProjectKey
from polywatch.infrastructure.state.segments import SegmentCache

logger = structlog.get_logger()


def build_stats_url(base_url: str, key: ProjectKey, translation_set: str = "default") -> str:
    """Build the stats URL for a project, locale and translation set."""
    return f"{base_url.rstrip('/')}/{key.type.segment}/{key.slug}/{key.locale}/{translation_set}/"


class SegmentResolver:
    """Finds which project type the remote API knows a slug under.

    Callers pass a guessed type; the guess is tried first, then every other
    type in declaration order. The first type that answers is memoized.
    """

    def __init__(self, cache: SegmentCache, base_url: str, client: httpx.AsyncClient) -> None:
        """Initialize the resolver.

        Args:
            cache: Memoized resolutions.
            base_url: Base URL of the stats API.
            client: HTTP client shared with the scraper.

        """
        self._cache = cache
        self._base_url = base_url
        self._client = client

    async def resolve(self, key: ProjectKey, translation_set: str = "default") -> ProjectType | None:
        """Resolve the real type for ``key``.

        Returns:
            The type that answered, or None when no candidate did. Nothing is
            cached on failure so the next call checks again.

        """
        cached = await self._cache.get(key.type, key.slug)
        if cached is not None:
            return cached

        candidates = list(dict.fromkeys([key.type, *ProjectType]))
        for candidate in candidates:
            url = build_stats_url(self._base_url, key.with_type(candidate), translation_set)
            if await self._exists(url):
                await self._cache.put(key.type, key.slug, candidate)
                logger.info(
                    "Segment resolved",
                    project=key.storage_key,
                    resolved=candidate.value,
                    segment=candidate.segment,
                )
                return candidate

        logger.info("Segment unresolved", project=key.storage_key)
        return None

    async def _exists(self, url: str) -> bool:
        try:
            response = await self._client.head(url)
            if response.status_code == 405:
                response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Segment existence check failed", url=url, error=str(e))
            return False
        return response.status_code == 200

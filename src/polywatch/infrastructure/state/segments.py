"""Memoized project type to API segment resolutions."""

import structlog

from polywatch.application.ports.store import KeyValueStore
from polywatch.domain.enums import ProjectType

logger = structlog.get_logger()

SEGMENT_PREFIX = "segment:"


class SegmentCache:
    """Append-only map of ``(type, slug)`` to the type that actually answered."""

    def __init__(self, store: KeyValueStore) -> None:
        """Initialize the cache over a key-value store."""
        self._store = store

    @staticmethod
    def _key(project_type: ProjectType, slug: str) -> str:
        return f"{SEGMENT_PREFIX}{project_type.value}:{slug.lower()}"

    async def get(self, project_type: ProjectType, slug: str) -> ProjectType | None:
        """Return the cached resolution, if any."""
        value = await self._store.get(self._key(project_type, slug))
        if value is None:
            return None
        try:
            return ProjectType(value)
        except ValueError:
            logger.warning("Ignoring invalid cached segment", slug=slug, value=value)
            return None

    async def put(self, project_type: ProjectType, slug: str, resolved: ProjectType) -> None:
        """Record a resolution."""
        await self._store.set(self._key(project_type, slug), resolved.value)

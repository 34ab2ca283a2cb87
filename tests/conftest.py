"""Pytest configuration and fixtures."""

import os
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from polywatch.config import Settings
from polywatch.domain.enums import ProjectType
from polywatch.domain.models import ProjectKey, Snapshot
from polywatch.infrastructure.store import InMemoryKeyValueStore

# Set test environment variables before importing settings
os.environ.setdefault("POLYWATCH_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("POLYWATCH_SURVEILLANCE_ENABLED", "true")

DEFAULT_WEBHOOK = "https://hooks.slack.com/services/T000/B000/default"
START = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


class FakeClock:
    """Mutable clock; call it to read the time, advance it to move on."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Return a clock frozen at a fixed Monday noon UTC."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryKeyValueStore:
    """Return an empty in-memory store sharing the test clock."""
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def rng() -> random.Random:
    """Return a seeded random source."""
    return random.Random(42)


@pytest.fixture
def settings() -> Settings:
    """Return settings suited to tests (no retry pause, default webhook set)."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        slack_webhook_url=DEFAULT_WEBHOOK,
        retry_pause_seconds=0,
        recheck_jitter_seconds=300,
        api_base_url="https://api.test/api/projects",
        site_base_url="https://site.test/projects",
    )


@pytest.fixture
def project_key() -> ProjectKey:
    """Return a plugin project key."""
    return ProjectKey(type=ProjectType.PLUGIN, slug="akismet", locale="fr_FR")


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Return a factory for snapshots with sensible defaults."""

    def _make(
        translated: int = 0,
        untranslated: int = 0,
        fuzzy: int = 0,
        waiting: int = 0,
        **kwargs: Any,
    ) -> Snapshot:
        kwargs.setdefault("fetched_at", START)
        return Snapshot(
            translated=translated,
            untranslated=untranslated,
            fuzzy=fuzzy,
            waiting=waiting,
            **kwargs,
        )

    return _make

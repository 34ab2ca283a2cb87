"""Fixtures for API tests: wired services over fake remote endpoints."""

import random
from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from polywatch.api.app import create_app
from polywatch.api.deps import Services, build_services, set_scheduler, set_services
from polywatch.config import Settings
from polywatch.infrastructure.store import InMemoryKeyValueStore
from tests.conftest import FakeClock

STATS_PAYLOAD = {
    "translation_sets": [
        {"name": "Akismet Anti-spam", "locale": "French (France)", "translated": 40, "untranslated": 60},
    ],
}


class FakeRemote:
    """Stats API and Slack webhook in one handler.

    Stats paths listed in ``known`` answer HEAD and GET; everything else is 404.
    Slack posts are recorded and answered with ``ok``.
    """

    def __init__(self) -> None:
        self.known = {"/api/projects/wp-plugins/akismet/fr_FR/default/"}
        self.slack_posts: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "hooks.slack.com":
            self.slack_posts.append(request)
            return httpx.Response(200, text="ok")
        if request.url.path not in self.known:
            return httpx.Response(404)
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, json=STATS_PAYLOAD)


@pytest.fixture
def remote() -> FakeRemote:
    """Return the fake remote endpoints."""
    return FakeRemote()


@pytest.fixture
def services(
    settings: Settings,
    store: InMemoryKeyValueStore,
    clock: FakeClock,
    remote: FakeRemote,
) -> Generator[Services]:
    """Wire services over the fake remote and register them with the app state."""
    transport = httpx.MockTransport(remote)
    wired = build_services(
        settings,
        store,
        scraper_client=httpx.AsyncClient(transport=transport),
        slack_client=httpx.AsyncClient(transport=transport),
        rng=random.Random(3),
        clock=clock,
    )
    set_services(wired)
    yield wired
    set_services(None)
    set_scheduler(None)


@pytest.fixture
def app(services: Services) -> FastAPI:
    """Create the full application with wired services."""
    return create_app()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

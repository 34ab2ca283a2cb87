"""Tests for Settings API routes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from polywatch.api.deps import Services, set_scheduler
from polywatch.api.routes.settings import MASK

GLOBAL_URL = "https://hooks.slack.com/services/T/B/global"
FRENCH_URL = "https://hooks.slack.com/services/T/B/french"


@pytest.fixture
def mock_scheduler() -> MagicMock:
    """Return mock running scheduler."""
    scheduler = MagicMock()
    scheduler.is_running = True
    scheduler.reschedule = AsyncMock()
    return scheduler


class TestGetSettings:
    """Tests for GET /api/v1/settings/notifications."""

    @pytest.mark.asyncio
    async def test_defaults(self, client: AsyncClient) -> None:
        """Test the default document."""
        response = await client.get("/api/v1/settings/notifications")

        assert response.status_code == 200
        data = response.json()
        assert data["global_webhook"] is None
        assert data["locales"] == {}
        assert data["notification_defaults"]["new_strings_threshold"] == 20
        assert data["notification_defaults"]["milestones"] == [50, 80, 100]


class TestUpdateSettings:
    """Tests for PUT /api/v1/settings/notifications."""

    @pytest.mark.asyncio
    async def test_update_masks_urls(self, client: AsyncClient, services: Services) -> None:
        """Test that saved URLs never come back in clear."""
        response = await client.put(
            "/api/v1/settings/notifications",
            json={
                "global_webhook": {"enabled": True, "webhook_url": GLOBAL_URL},
                "locales": {"fr_FR": {"webhook": {"enabled": True, "webhook_url": FRENCH_URL}}},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["global_webhook"]["webhook_url"] == MASK
        assert data["locales"]["fr_FR"]["webhook"]["webhook_url"] == MASK

        fetched = (await client.get("/api/v1/settings/notifications")).json()
        assert fetched["global_webhook"]["webhook_url"] == MASK

        runtime = await services.settings_repository.load()
        assert runtime.global_webhook is not None
        assert runtime.global_webhook.url == GLOBAL_URL

    @pytest.mark.asyncio
    async def test_masked_url_keeps_stored_value(self, client: AsyncClient, services: Services) -> None:
        """Test that sending the mask back preserves the stored URL."""
        await client.put(
            "/api/v1/settings/notifications",
            json={"global_webhook": {"enabled": True, "webhook_url": GLOBAL_URL}},
        )

        response = await client.put(
            "/api/v1/settings/notifications",
            json={"global_webhook": {"enabled": False, "webhook_url": MASK}},
        )

        assert response.status_code == 200
        doc = await services.settings_repository.get_document()
        assert doc.global_webhook is not None
        assert doc.global_webhook.webhook_url == GLOBAL_URL
        assert doc.global_webhook.enabled is False

    @pytest.mark.asyncio
    async def test_rejects_non_slack_url(self, client: AsyncClient) -> None:
        """Test that foreign webhook URLs are refused."""
        response = await client.put(
            "/api/v1/settings/notifications",
            json={"global_webhook": {"enabled": True, "webhook_url": "https://example.com/hook"}},
        )

        assert response.status_code == 422
        assert "hooks.slack.com" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_rejects_unsupported_interval(self, client: AsyncClient) -> None:
        """Test that unsupported tick cadences fail validation."""
        response = await client.put("/api/v1/settings/notifications", json={"surveillance_interval": 7})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_interval_change_reschedules(self, client: AsyncClient, mock_scheduler: MagicMock) -> None:
        """Test that saving realigns the running scheduler."""
        set_scheduler(mock_scheduler)

        response = await client.put("/api/v1/settings/notifications", json={"surveillance_interval": 60})

        assert response.status_code == 200
        mock_scheduler.reschedule.assert_awaited_once_with(60)

"""Slack incoming-webhook notifier."""

from typing import Any

import httpx
import structlog

from polywatch.application.ports.notifier import NotificationError
from polywatch.config import Settings

from .formatter import format_test_message

logger = structlog.get_logger()


class SlackNotifier:
    """Posts messages to Slack incoming webhooks.

    A message counts as delivered only when Slack answers 200 with body ``ok``.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the notifier.

        Args:
            settings: Application settings (default webhook, timeout, user agent).
            client: Optional HTTP client; created on first use when omitted.

        """
        self._settings = settings
        self._client = client
        self._default_url = settings.slack_webhook_url.get_secret_value() if settings.slack_webhook_url else ""

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.request_timeout),
                headers={"User-Agent": self._settings.user_agent},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def is_ready(self) -> bool:
        """Whether a default webhook is configured."""
        return bool(self._default_url)

    async def send(self, text: str, url: str | None = None, formatted: dict[str, Any] | None = None) -> bool:
        """Send a message, falling back to the default webhook when ``url`` is empty."""
        target = url or self._default_url
        if not target:
            logger.warning("No Slack webhook configured, message not sent")
            return False
        return await self._post(target, text, formatted)

    async def send_override(self, text: str, explicit_url: str, formatted: dict[str, Any] | None = None) -> bool:
        """Send to ``explicit_url`` only."""
        if not explicit_url:
            logger.warning("Override send without URL, message not sent")
            return False
        return await self._post(explicit_url, text, formatted)

    async def send_test(self, url: str | None = None) -> bool:
        """Send the self-test message."""
        text, payload = format_test_message()
        return await self.send(text, url, payload)

    async def _post(self, url: str, text: str, formatted: dict[str, Any] | None) -> bool:
        payload = formatted if formatted is not None else {"text": text}
        client = await self.get_client()
        try:
            response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            msg = f"Slack request failed: {e}"
            raise NotificationError(msg, error_type="network") from e

        if response.status_code == 200 and response.text.strip() == "ok":
            logger.debug("Slack message sent")
            return True

        logger.warning(
            "Slack rejected message",
            status=response.status_code,
            body=response.text[:200],
        )
        return False

"""Notification router - filters change events and delivers them per channel."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from polywatch.application.ports.notifier import NotificationError, Notifier
from polywatch.domain.enums import NotificationMode
from polywatch.domain.events import ChangeEvent, Milestone, NewStrings
from polywatch.domain.models import DigestQueueItem, ProjectKey, WebhookConfig
from polywatch.infrastructure.slack.formatter import format_event, summarize_event
from polywatch.infrastructure.state.digest_queue import DigestQueue

logger = structlog.get_logger()


def skip_reason(config: WebhookConfig, event: ChangeEvent, key: ProjectKey) -> str | None:
    """Return why ``config`` does not accept ``event``, or None if it does."""
    if not config.enabled:
        return "disabled"
    if event.change_type not in config.allowed_types:
        return "type_not_allowed"
    if config.scope_locales and key.locale not in config.scope_locales:
        return "locale_out_of_scope"
    if config.scope_projects and not any(scope.matches(key) for scope in config.scope_projects):
        return "project_out_of_scope"
    if isinstance(event, NewStrings) and event.count < config.new_strings_threshold:
        return "below_threshold"
    if isinstance(event, Milestone) and config.milestones and event.threshold not in config.milestones:
        return "milestone_not_selected"
    return None


class NotificationRouter:
    """Routes change events to immediate sends or digest queues.

    Each channel posts to its own URL only; a channel without a usable URL
    drops the event rather than falling back to the default webhook.
    Delivery failures are logged and swallowed: they never reach the scrape
    pipeline and never roll back a registry commit.
    """

    def __init__(
        self,
        queue: DigestQueue,
        notifier: Notifier,
        site_base_url: str,
        translation_set: str = "default",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            queue: Digest queues for channels in digest mode.
            notifier: Outbound channel for immediate sends.
            site_base_url: Base URL for project links in messages.
            translation_set: Translation set slug used in links.
            clock: Source of the enqueue timestamp.

        """
        self._queue = queue
        self._notifier = notifier
        self._site_base_url = site_base_url
        self._translation_set = translation_set
        self._clock = clock or (lambda: datetime.now(UTC))

    async def dispatch(self, event: ChangeEvent, key: ProjectKey, configs: list[WebhookConfig]) -> int:
        """Deliver one event to every config that accepts it.

        Args:
            event: Change to deliver.
            key: Project the change belongs to.
            configs: Applicable channels (global first, then the locale's own).

        Returns:
            Number of channels the event was sent or queued to.

        """
        log = logger.bind(project=key.storage_key, change_type=event.change_type.value)
        rendered: tuple[str, dict] | None = None
        summary: str | None = None
        routed = 0

        for config in configs:
            reason = skip_reason(config, event, key)
            if reason is not None:
                log.debug("Event skipped", channel=config.channel_id, reason=reason)
                continue
            if not config.url:
                log.warning("Channel has no usable webhook URL, event dropped", channel=config.channel_id)
                continue

            if config.mode is NotificationMode.DIGEST:
                summary = summary or summarize_event(event, key)
                item = DigestQueueItem(
                    change_type=event.change_type,
                    project_key=key,
                    message=summary,
                    enqueued_at=self._clock(),
                )
                await self._queue.enqueue(config.channel_id, item)
                log.debug("Event queued for digest", channel=config.channel_id)
                routed += 1
                continue

            rendered = rendered or format_event(event, key, self._site_base_url, self._translation_set)
            text, payload = rendered
            try:
                sent = await self._notifier.send_override(text, config.url, payload)
            except NotificationError as e:
                log.warning("Notification failed", channel=config.channel_id, error=str(e))
                continue
            if not sent:
                log.warning("Notification rejected", channel=config.channel_id)
                continue
            log.debug("Event sent", channel=config.channel_id)
            routed += 1

        return routed

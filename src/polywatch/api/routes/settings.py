"""Notification settings API endpoints."""

import structlog
from fastapi import APIRouter, HTTPException, status

from polywatch.api.deps import SchedulerDep, SettingsRepoDep
from polywatch.infrastructure.state.settings_repository import NotificationSettingsDoc

router = APIRouter(prefix="/settings", tags=["settings"])

logger = structlog.get_logger()

MASK = "********"


def _masked(doc: NotificationSettingsDoc) -> NotificationSettingsDoc:
    """Copy of ``doc`` with webhook URLs hidden."""
    masked = doc.model_copy(deep=True)
    if masked.global_webhook and masked.global_webhook.webhook_url:
        masked.global_webhook.webhook_url = MASK
    for locale in masked.locales.values():
        if locale.webhook and locale.webhook.webhook_url:
            locale.webhook.webhook_url = MASK
    return masked


@router.get("/notifications")
async def get_notification_settings(repo: SettingsRepoDep) -> NotificationSettingsDoc:
    """Get the notification settings document, webhook URLs masked."""
    return _masked(await repo.get_document())


@router.put("/notifications")
async def update_notification_settings(
    data: NotificationSettingsDoc,
    repo: SettingsRepoDep,
    scheduler: SchedulerDep,
) -> NotificationSettingsDoc:
    """Replace the notification settings document.

    A masked URL keeps the stored value.
    """
    current = await repo.get_document()
    if data.global_webhook and data.global_webhook.webhook_url == MASK:
        data.global_webhook.webhook_url = current.global_webhook.webhook_url if current.global_webhook else ""
    for code, locale in data.locales.items():
        if locale.webhook and locale.webhook.webhook_url == MASK:
            stored = current.locales.get(code)
            locale.webhook.webhook_url = stored.webhook.webhook_url if stored and stored.webhook else ""

    try:
        saved = await repo.save_document(data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    if scheduler is not None and scheduler.is_running:
        runtime = await repo.load()
        await scheduler.reschedule(runtime.surveillance_interval)
        logger.info("Ticks realigned", interval_minutes=runtime.surveillance_interval)

    return _masked(saved)

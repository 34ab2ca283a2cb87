"""Application services."""

from .digest_scheduler import DigestScheduler
from .notification_router import NotificationRouter
from .surveillance_service import DigestTickReport, SurveillanceService, TickReport
from .watch_registry import WatchRegistry

__all__ = [
    "DigestScheduler",
    "DigestTickReport",
    "NotificationRouter",
    "SurveillanceService",
    "TickReport",
    "WatchRegistry",
]

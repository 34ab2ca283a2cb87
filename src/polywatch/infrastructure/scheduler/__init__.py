"""Tick scheduling."""

from .apscheduler import DIGEST_SCHEDULE_ID, SURVEILLANCE_SCHEDULE_ID, TickScheduler

__all__ = ["DIGEST_SCHEDULE_ID", "SURVEILLANCE_SCHEDULE_ID", "TickScheduler"]

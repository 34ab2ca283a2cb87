"""Application ports - protocols and interfaces."""

from .notifier import NotificationError, Notifier
from .scraper import Scraper
from .store import KeyValueStore

__all__ = [
    "KeyValueStore",
    "NotificationError",
    "Notifier",
    "Scraper",
]

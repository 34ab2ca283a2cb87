"""Typed stores over the key-value store."""

from .backoff import BackoffStore
from .digest_queue import DigestQueue
from .segments import SegmentCache
from .settings_repository import SettingsRepository

__all__ = ["BackoffStore", "DigestQueue", "SegmentCache", "SettingsRepository"]

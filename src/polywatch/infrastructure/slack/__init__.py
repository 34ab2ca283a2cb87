"""Slack delivery."""

from .notifier import SlackNotifier

__all__ = ["SlackNotifier"]

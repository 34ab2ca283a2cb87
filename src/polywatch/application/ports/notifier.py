"""Notifier protocol definition."""

from typing import Any, Protocol


class Notifier(Protocol):
    """Protocol for outbound notification channels."""

    def is_ready(self) -> bool:
        """Whether a default destination is configured."""
        ...

    async def send(self, text: str, url: str | None = None, formatted: dict[str, Any] | None = None) -> bool:
        """Send a message, using the default destination when ``url`` is empty.

        Args:
            text: Plain text fallback.
            url: Destination URL.
            formatted: Rich payload; ``text`` is used alone when None.

        Returns:
            True if the destination accepted the message.

        Raises:
            NotificationError: If the destination could not be reached.

        """
        ...

    async def send_override(self, text: str, explicit_url: str, formatted: dict[str, Any] | None = None) -> bool:
        """Send to ``explicit_url`` only, never falling back to the default."""
        ...

    async def send_test(self, url: str | None = None) -> bool:
        """Send a self-test message to ``url`` or the default destination."""
        ...


class NotificationError(Exception):
    """Delivery failed before the destination could answer."""

    def __init__(self, message: str, error_type: str = "unknown") -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            error_type: Type of error (network, config, etc.).

        """
        super().__init__(message)
        self.error_type = error_type

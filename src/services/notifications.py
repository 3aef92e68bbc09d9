"""User notification delivery for scheduled expense outcomes."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from config import settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol for delivering short user-facing notifications."""

    def notify(self, title: str, message: str) -> None:
        """Deliver a notification with a title and body."""
        ...


class NotificationError(Exception):
    """Raised when a notifier cannot deliver a message."""


class LoggingNotifier:
    """Notifier that writes notifications to the application log."""

    def __init__(self, level: int = logging.WARNING) -> None:
        self._level = level

    def notify(self, title: str, message: str) -> None:
        logger.log(self._level, "Notification: title=%s message=%s", title, message)


class SignalNotifier:
    """Notifier for signal-cli-rest-api deployments."""

    def __init__(
        self,
        from_number: str,
        recipients: list[str],
        *,
        api_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize with the sender number and recipient list."""
        if not recipients:
            raise ValueError("SignalNotifier requires at least one recipient.")
        self.api_url = (api_url or settings.notifications.signal_url).rstrip("/")
        self._from_number = from_number
        self._recipients = list(recipients)
        self._timeout = timeout

    def notify(self, title: str, message: str) -> None:
        """Send a message via Signal.

        Raises:
            NotificationError: If the API rejects the message or is unreachable.
        """
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(
                    f"{self.api_url}/v2/send",
                    json={
                        "message": f"**{title}**\n{message}",
                        "text_mode": "styled",
                        "number": self._from_number,
                        "recipients": self._recipients,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Failed to send Signal notification: %s", e)
            raise NotificationError(f"Signal API error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Signal connection error: %s", e)
            raise NotificationError(f"Signal connection error: {e}") from e

        logger.info("Sent Signal notification to %s recipient(s)", len(self._recipients))


def build_notifier() -> Notifier:
    """Return the notifier selected by ``settings.notifications.backend``."""
    notifications_config = settings.notifications
    if notifications_config.backend == "signal":
        assert notifications_config.signal_from_number is not None
        return SignalNotifier(
            notifications_config.signal_from_number,
            notifications_config.signal_recipients,
            api_url=notifications_config.signal_url,
        )
    return LoggingNotifier()

"""User-facing notifications for sync outcomes.

The hub reports run results and operator actions through a Notifier. A
desktop shell would show them as toasts; the CLI and the tests use
LoggingNotifier, which writes them to the log and keeps what it sent.

Dismiss times:
    success: 3000 ms
    error: 5000 ms
    operator commands (sync all, reset stuck syncs): 2000 ms
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, Field

from synchub.constants import (
    NOTIFY_ERROR_DISMISS_MS,
    NOTIFY_OPERATOR_DISMISS_MS,
    NOTIFY_SUCCESS_DISMISS_MS,
)
from synchub.logging import get_logger

logger = get_logger(__name__)

NotificationLevel = Literal["success", "error", "info"]

_DISMISS_MS: dict[str, int] = {
    "success": NOTIFY_SUCCESS_DISMISS_MS,
    "error": NOTIFY_ERROR_DISMISS_MS,
    "info": NOTIFY_OPERATOR_DISMISS_MS,
}


class Notification(BaseModel):
    """A transient message for the user."""

    title: str = Field(..., description="Short heading, usually the provider id")
    message: str = Field(..., description="Body text")
    level: NotificationLevel = Field(default="success", description="Severity")
    auto_dismiss_ms: int = Field(default=NOTIFY_SUCCESS_DISMISS_MS, ge=0)

    @classmethod
    def build(cls, title: str, message: str, level: NotificationLevel = "success") -> Notification:
        """Create a notification with the dismiss time for its level."""
        return cls(title=title, message=message, level=level, auto_dismiss_ms=_DISMISS_MS[level])


class Notifier(ABC):
    """Destination for notifications."""

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        """Deliver one notification. Must not raise for delivery problems."""
        ...


class LoggingNotifier(Notifier):
    """Notifier that logs each notification and remembers it.

    Attributes:
        sent: Every notification delivered, oldest first.
    """

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.sent.append(notification)
        level = logging.WARNING if notification.level == "error" else logging.INFO
        logger.log(
            level,
            f"{notification.title}: {notification.message}",
            extra={"notification_level": notification.level},
        )

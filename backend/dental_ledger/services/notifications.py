from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger("dental_ledger.notifications")


class NotificationLevel(str, enum.Enum):
    success = "success"
    info = "info"
    warning = "warning"
    error = "error"


_LOG_LEVELS = {
    NotificationLevel.success: logging.INFO,
    NotificationLevel.info: logging.INFO,
    NotificationLevel.warning: logging.WARNING,
    NotificationLevel.error: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"level": self.level.value, "message": self.message}


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    def notify(self, notification: Notification) -> None:
        logger.log(_LOG_LEVELS[notification.level], "%s", notification.message)


@dataclass
class CollectingNotificationSink:
    """Keeps notifications for the current request and forwards them to the log."""

    notifications: list[Notification] = field(default_factory=list)
    forward: NotificationSink | None = field(default_factory=LoggingNotificationSink)

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self.forward is not None:
            self.forward.notify(notification)

    def drain(self) -> list[Notification]:
        drained = list(self.notifications)
        self.notifications.clear()
        return drained

"""User-facing notification sinks.

Services never reach for a global toast channel; they receive a notifier and
call ``notify(message, level)`` on it. ``LoggingNotifier`` is the default sink
for the CLI, ``RecordingNotifier`` keeps messages in memory for UIs that poll
and for tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Protocol


LEVELS = ("info", "success", "warning", "error")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None:
        ...


@dataclass
class Notification:
    message: str
    level: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LoggingNotifier:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("nimbus.notifications")

    def notify(self, message: str, level: str = "info") -> None:
        self.logger.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)


@dataclass
class RecordingNotifier:
    notifications: List[Notification] = field(default_factory=list)

    def notify(self, message: str, level: str = "info") -> None:
        if level not in LEVELS:
            level = "info"
        self.notifications.append(Notification(message=message, level=level))

    def messages(self, level: str | None = None) -> List[str]:
        return [n.message for n in self.notifications if level is None or n.level == level]

    def flush(self) -> List[Notification]:
        drained = list(self.notifications)
        self.notifications.clear()
        return drained

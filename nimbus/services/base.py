"""Base class for client-side services."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import NimbusConfig
from ..notifier import Notifier


@dataclass
class BaseService:
    config: NimbusConfig
    notifier: Notifier

    def notify_success(self, message: str) -> None:
        self.notifier.notify(message, "success")

    def notify_error(self, message: str) -> None:
        self.notifier.notify(message, "error")

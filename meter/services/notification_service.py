"""
Notification sinks for Pomodoro phase changes.

Architecture Decision: Single-method interface
The core only calls notify(title, message); whether that becomes a tray balloon,
a log line or nothing at all is decided by whoever builds the controller.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Receives user-facing notifications"""

    @abstractmethod
    def notify(self, title: str, message: str) -> None:
        raise NotImplementedError("Subclasses must implement notify")


class NullNotifier(NotificationSink):
    """Drops every notification"""

    def notify(self, title: str, message: str) -> None:
        pass


class LogNotifier(NotificationSink):
    """Writes notifications to the application log"""

    def notify(self, title: str, message: str) -> None:
        logger.info(f"{title}: {message}")


class RecordingNotifier(NotificationSink):
    """Keeps notifications in memory (CLI status output and tests)"""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.sent.append((title, message))

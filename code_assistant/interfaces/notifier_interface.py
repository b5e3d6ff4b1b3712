"""User notification interface."""

import logging
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class NotifierInterface(ABC):
    """Abstract interface for user-visible notifications (toasts)."""

    @abstractmethod
    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        """Show a short message to the user.

        Args:
            message: Text to display
            level: Severity used to style the message
        """
        pass


class LoggingNotifier(NotifierInterface):
    """Notifier that writes messages to the log; used when no UI is attached."""

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        if level is NotificationLevel.ERROR:
            logger.error(message)
        else:
            logger.info(message)

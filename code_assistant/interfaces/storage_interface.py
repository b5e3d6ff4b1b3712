"""Persistence port interface."""

from abc import ABC, abstractmethod


class PersistencePort(ABC):
    """Dumb text key-value store used for client-side state."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored value or None when absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a value; absent keys are ignored."""
        pass

"""Key-value stores backing the persistence port."""

import json
import logging
from pathlib import Path

from code_assistant.interfaces.storage_interface import PersistencePort

logger = logging.getLogger(__name__)


class JsonFileStorage(PersistencePort):
    """Persist string values in a single JSON object on disk."""

    def __init__(self, storage_path: str | Path) -> None:
        """Initialize file storage.

        Args:
            storage_path: Path to the JSON file; created on first write
        """
        self.storage_path = Path(storage_path)
        self._items: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        """Load stored items from disk, tolerating a missing or corrupt file."""
        if not self.storage_path.exists():
            return {}
        try:
            with open(self.storage_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self.storage_path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: not a JSON object", self.storage_path)
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _save(self) -> None:
        """Write all items to disk; failures are logged, not raised."""
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(self._items, f, indent=2)
        except OSError as e:
            logger.warning("Could not write storage file %s: %s", self.storage_path, e)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._save()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save()


class InMemoryStorage(PersistencePort):
    """Process-local store; nothing survives a restart."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

"""Validation and persistence of per-session query settings."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Iterable

from code_assistant.interfaces.storage_interface import PersistencePort
from code_assistant.models.settings import DEFAULT_QUERY_SETTINGS, QuerySettings
from code_assistant.utils.timing import Debouncer

logger = logging.getLogger(__name__)

SETTINGS_KEY = "chatQuerySettings"
RERANKER_PREFERRED_SUBSTRING = "codellama"

# Stored camelCase key -> model field name
_FIELD_BY_ALIAS = {
    (info.alias or name): name for name, info in QuerySettings.model_fields.items()
}


class SettingsStore:
    """Load, repair and save query settings through a persistence port."""

    def __init__(
        self,
        storage: PersistencePort,
        save_delay: float = 0.3,
        on_saved: Callable[[QuerySettings], None] | None = None,
    ) -> None:
        """Initialize settings store.

        Args:
            storage: Persistence port for the serialized settings
            save_delay: Quiet period before a scheduled save is written
            on_saved: Called after each debounced write
        """
        self.storage = storage
        self.on_saved = on_saved
        self._debouncer = Debouncer(save_delay, self._save_scheduled)

    def load(self, defaults: QuerySettings = DEFAULT_QUERY_SETTINGS) -> QuerySettings:
        """Merge stored settings onto ``defaults`` field by field.

        Stored values are not validated here; run ``validate`` on the result.
        A corrupt record is removed and ``defaults`` returned unchanged.

        Args:
            defaults: Values used for every field not present in storage

        Returns:
            Merged settings (possibly holding invalid values)
        """
        raw = self.storage.get_item(SETTINGS_KEY)
        if not raw:
            return defaults.model_copy()
        try:
            stored = json.loads(raw)
            if not isinstance(stored, dict):
                raise ValueError(f"expected a JSON object, got {type(stored).__name__}")
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("Failed to parse stored query settings, using defaults: %s", e)
            self.storage.remove_item(SETTINGS_KEY)
            return defaults.model_copy()

        values = _field_values(defaults)
        for key, value in stored.items():
            name = _FIELD_BY_ALIAS.get(key) or (key if key in values else None)
            if name is not None:
                values[name] = value
        # Skip validation so ``validate`` sees, and repairs, what was stored.
        return QuerySettings.model_construct(**values)

    def validate(
        self,
        settings: QuerySettings,
        available_model_ids: Iterable[str],
        configured_default_model_id: str | None,
        defaults: QuerySettings = DEFAULT_QUERY_SETTINGS,
    ) -> QuerySettings:
        """Repair every field to a valid value.

        Args:
            settings: Possibly invalid settings
            available_model_ids: Ids of models the backend offers
            configured_default_model_id: Model chosen during setup, if any
            defaults: Source of replacement values for invalid scalar fields

        Returns:
            Settings where every field satisfies its constraint
        """
        model_ids = list(available_model_ids)
        values = _field_values(settings)
        fallback = _field_values(DEFAULT_QUERY_SETTINGS)

        if not values["model_id"] or values["model_id"] not in model_ids:
            values["model_id"] = configured_default_model_id or (model_ids[0] if model_ids else None)

        if not values["reranker_model_name"] or values["reranker_model_name"] not in model_ids:
            preferred = next(
                (model_id for model_id in model_ids if RERANKER_PREFERRED_SUBSTRING in model_id),
                None,
            )
            values["reranker_model_name"] = preferred or (model_ids[0] if model_ids else None)

        if not isinstance(values["use_re_ranker"], bool):
            values["use_re_ranker"] = defaults.use_re_ranker

        top_n = _as_int(values["re_ranker_top_n"])
        if top_n is None or top_n < 1:
            top_n = _as_int(defaults.re_ranker_top_n)
            if top_n is None or top_n < 1:
                top_n = fallback["re_ranker_top_n"]
        values["re_ranker_top_n"] = top_n

        temperature = _as_float(values["temperature"])
        if temperature is None or temperature < 0:
            temperature = _as_float(defaults.temperature)
            if temperature is None or temperature < 0:
                temperature = fallback["temperature"]
        values["temperature"] = temperature

        max_tokens = _as_int(values["llm_max_new_tokens"])
        if max_tokens is None or max_tokens < 1:
            max_tokens = _as_int(defaults.llm_max_new_tokens)
            if max_tokens is None or max_tokens < 1:
                max_tokens = fallback["llm_max_new_tokens"]
        values["llm_max_new_tokens"] = max_tokens

        return QuerySettings(**values)

    def load_validated(
        self,
        available_model_ids: Iterable[str],
        configured_default_model_id: str | None,
    ) -> QuerySettings:
        """Load stored settings and repair them against the available models."""
        return self.validate(
            self.load(DEFAULT_QUERY_SETTINGS),
            available_model_ids,
            configured_default_model_id,
        )

    def save(self, settings: QuerySettings) -> None:
        """Serialize and write settings immediately."""
        self.storage.set_item(SETTINGS_KEY, settings.model_dump_json(by_alias=True))
        logger.debug("Query settings saved.")

    def schedule_save(self, settings: QuerySettings) -> None:
        """Write settings once changes stop arriving for the save delay."""
        self._debouncer.trigger(settings.model_copy())

    def flush(self) -> None:
        """Write a scheduled save now, if one is pending."""
        self._debouncer.flush()

    def _save_scheduled(self, settings: QuerySettings) -> None:
        self.save(settings)
        if self.on_saved is not None:
            self.on_saved(settings)


def _field_values(settings: QuerySettings) -> dict[str, Any]:
    return {name: getattr(settings, name, None) for name in QuerySettings.model_fields}


def _as_int(value: Any) -> int | None:
    """Return value as an int if it is a whole number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_float(value: Any) -> float | None:
    """Return value as a finite float, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)

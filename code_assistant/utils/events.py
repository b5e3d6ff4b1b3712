"""In-process publish/subscribe channel for cross-component notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationListChanged:
    """The set of stored conversations changed (e.g. a new one was created)."""

    conversation_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class ActiveConversationChanged:
    """The chat session opened a conversation, or a fresh one when None."""

    conversation_id: str | None = None


@dataclass(frozen=True)
class ActiveConversationDeleted:
    """The open conversation was deleted; None means all were deleted."""

    conversation_id: str | None = None


class EventBus:
    """Synchronous event dispatch keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register a handler.

        Args:
            event_type: Event class to listen for
            handler: Called with each published event of that type

        Returns:
            Callable that removes the subscription
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        """Deliver an event to every handler subscribed to its type."""
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug("Publishing %s to %s handler(s).", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)

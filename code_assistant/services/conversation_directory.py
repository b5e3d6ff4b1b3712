"""List of known conversations kept in sync with the backend."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from code_assistant.exceptions import TransportError
from code_assistant.interfaces.backend_interface import ChatBackendInterface
from code_assistant.interfaces.notifier_interface import (
    LoggingNotifier,
    NotificationLevel,
    NotifierInterface,
)
from code_assistant.models.chat import Conversation, MessageRole
from code_assistant.utils.events import (
    ActiveConversationChanged,
    ActiveConversationDeleted,
    ConversationListChanged,
    EventBus,
)
from code_assistant.utils.timing import Debouncer, PeriodicTask

logger = logging.getLogger(__name__)

LOAD_ERROR = "Failed to load conversations. Please try again."
PREVIEW_LENGTH = 40


def sort_conversations(conversations: Iterable[Conversation]) -> list[Conversation]:
    """Order conversations newest first; those without any timestamp go last."""

    def sort_key(conversation: Conversation) -> tuple[bool, datetime | None]:
        timestamp = conversation.effective_timestamp()
        return (timestamp is not None, timestamp or datetime.min)

    # reverse=True keeps the sort stable for equal keys
    return sorted(conversations, key=sort_key, reverse=True)


def matches_search(conversation: Conversation, term: str) -> bool:
    """Case-insensitive substring match on the title or any message content."""
    needle = term.strip().lower()
    if not needle:
        return True
    if conversation.title and needle in conversation.title.lower():
        return True
    return any(needle in message.content.lower() for message in conversation.messages)


def first_message_preview(conversation: Conversation) -> str:
    """Return the opening user message, used as a fallback title."""
    if conversation.messages and conversation.messages[0].role is MessageRole.USER:
        return conversation.messages[0].content or "New Conversation"
    return "New Conversation"


def last_message_preview(conversation: Conversation) -> str:
    """Return a one-line preview of the latest message."""
    if not conversation.messages:
        return "Empty conversation"
    last = conversation.messages[-1]
    prefix = {MessageRole.USER: "You: ", MessageRole.ASSISTANT: "Assistant: "}.get(last.role, "")
    ellipsis = "..." if len(last.content) > PREVIEW_LENGTH else ""
    return f"{prefix}{last.content[:PREVIEW_LENGTH]}{ellipsis}"


class ConversationDirectory:
    """Hold the conversation list and its search-filtered view.

    Refreshes run on a timer, on ``ConversationListChanged`` events and after
    deletes. Only the newest refresh may update the list, so a slow response
    never overwrites the result of a later one.

    Usage:
        async with ConversationDirectory(client, bus) as directory:
            directory.search("auth")
    """

    def __init__(
        self,
        backend: ChatBackendInterface,
        event_bus: EventBus | None = None,
        notifier: NotifierInterface | None = None,
        refresh_interval: float = 15.0,
        search_delay: float = 0.3,
    ) -> None:
        """Initialize conversation directory.

        Args:
            backend: History endpoints
            event_bus: Channel for list-changed and active-conversation events
            notifier: User-visible notifications
            refresh_interval: Seconds between silent background refreshes
            search_delay: Quiet period before a search term is applied
        """
        self.backend = backend
        self.event_bus = event_bus
        self.notifier = notifier or LoggingNotifier()

        self.conversations: list[Conversation] = []
        self.filtered: list[Conversation] = []
        self.search_term = ""
        self.loading = False
        self.error: str | None = None
        self.active_conversation_id: str | None = None

        self._refresh_generation = 0
        self._search_debouncer = Debouncer(search_delay, self._apply_search)
        self._timer = PeriodicTask(
            refresh_interval, self._refresh_silently, name="conversation-refresh"
        )
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    async def __aenter__(self) -> ConversationDirectory:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def start(self) -> None:
        """Load the list, then keep it fresh on a timer and on events."""
        if self.event_bus is not None and not self._unsubscribers:
            self._unsubscribers.extend(
                [
                    self.event_bus.subscribe(ConversationListChanged, self._on_list_changed),
                    self.event_bus.subscribe(ActiveConversationChanged, self._on_active_changed),
                ]
            )
        await self.refresh(silent=False)
        self._timer.start()

    async def aclose(self) -> None:
        """Stop the timer, drop subscriptions and pending work."""
        self._timer.stop()
        self._search_debouncer.cancel()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._refresh_generation += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ========== Refresh ==========

    async def refresh(self, silent: bool = False) -> None:
        """Fetch, sort and re-filter the conversation list.

        Args:
            silent: When True the ``loading`` indicator is left untouched
        """
        self._refresh_generation += 1
        generation = self._refresh_generation
        if not silent:
            self.loading = True
        self.error = None

        try:
            conversations = await self.backend.list_conversations()
        except TransportError as e:
            if generation != self._refresh_generation:
                return
            logger.error("Error fetching conversations: %s", e.detail)
            self.error = LOAD_ERROR
            self.loading = False
            return

        if generation != self._refresh_generation:
            logger.debug("Discarding stale conversation list (generation %s).", generation)
            return
        self.conversations = sort_conversations(conversations)
        self._apply_filter()
        self.loading = False

    def request_refresh(self, silent: bool = True) -> asyncio.Task:
        """Schedule a refresh without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self.refresh(silent=silent), name="conversation-refresh-once"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _refresh_silently(self) -> None:
        await self.refresh(silent=True)

    # ========== Search ==========

    def search(self, term: str) -> None:
        """Filter by ``term`` once typing pauses for the search delay."""
        self._search_debouncer.trigger(term)

    def clear_search(self) -> None:
        self.search("")

    def _apply_search(self, term: str) -> None:
        if term == self.search_term:
            return
        self.search_term = term
        self._apply_filter()

    def _apply_filter(self) -> None:
        self.filtered = [c for c in self.conversations if matches_search(c, self.search_term)]

    # ========== Deletion ==========

    async def delete(self, conversation_id: str) -> bool:
        """Delete one conversation on the backend, then locally.

        Returns:
            True if the backend confirmed the deletion
        """
        self.loading = True
        try:
            await self.backend.delete_conversation(conversation_id)
        except TransportError as e:
            logger.error("Error deleting conversation %s: %s", conversation_id, e.detail)
            self.error = "Failed to delete conversation."
            self.loading = False
            self._notify("Error deleting conversation. Please try again.", NotificationLevel.ERROR)
            return False

        # A list fetched before the delete must not bring the item back.
        self._refresh_generation += 1
        self.conversations = [
            c for c in self.conversations if c.conversation_id != conversation_id
        ]
        self._apply_filter()
        self.loading = False
        self._notify("Conversation deleted successfully.", NotificationLevel.SUCCESS)
        if self.active_conversation_id == conversation_id:
            self.active_conversation_id = None
            self._publish(ActiveConversationDeleted(conversation_id))
        self.request_refresh(silent=True)
        return True

    async def delete_all(self) -> bool:
        """Delete every conversation on the backend, then locally.

        Returns:
            True if the backend confirmed the deletion
        """
        self.loading = True
        try:
            await self.backend.delete_all_conversations()
        except TransportError as e:
            logger.error("Error deleting all conversations: %s", e.detail)
            self.error = "Failed to delete all conversations."
            self.loading = False
            self._notify(
                "Error deleting all conversations. Please try again.", NotificationLevel.ERROR
            )
            return False

        self._refresh_generation += 1
        self.conversations = []
        self._apply_filter()
        self.loading = False
        self._notify("All conversations deleted successfully.", NotificationLevel.SUCCESS)
        if self.active_conversation_id is not None:
            self.active_conversation_id = None
            self._publish(ActiveConversationDeleted(None))
        self.request_refresh(silent=True)
        return True

    # ========== Events ==========

    def _on_list_changed(self, event: ConversationListChanged) -> None:
        self.request_refresh(silent=True)

    def _on_active_changed(self, event: ActiveConversationChanged) -> None:
        self.active_conversation_id = event.conversation_id

    def _notify(self, message: str, level: NotificationLevel) -> None:
        self.notifier.notify(message, level)

    def _publish(self, event: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)

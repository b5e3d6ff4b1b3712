"""Chat session state machine: send, receive and edit-and-regenerate."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable

from code_assistant.exceptions import NotFoundError, TransportError
from code_assistant.interfaces.backend_interface import ChatBackendInterface
from code_assistant.interfaces.notifier_interface import (
    LoggingNotifier,
    NotificationLevel,
    NotifierInterface,
)
from code_assistant.models.chat import (
    ChatMessage,
    MessageRole,
    QueryRequest,
    as_utc,
    last_timestamp,
)
from code_assistant.models.settings import DEFAULT_QUERY_SETTINGS, QuerySettings
from code_assistant.models.setup import ModelInfo
from code_assistant.services.settings_store import SettingsStore
from code_assistant.services.setup_service import SetupService
from code_assistant.utils.events import (
    ActiveConversationChanged,
    ActiveConversationDeleted,
    ConversationListChanged,
    EventBus,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ChatSessionController:
    """Own one conversation's transcript and its request lifecycle.

    At most one query is in flight at a time: issuing a new one bumps the
    request generation, and a response that arrives for an older generation
    is dropped. Operations that issue a query return the ``asyncio.Task``
    running it so callers can await the round-trip.

    Usage:
        async with ChatSessionController(client, store, setup, bus) as chat:
            await chat.initialize()
            await chat.send_message("Where is the auth middleware?")
    """

    def __init__(
        self,
        backend: ChatBackendInterface,
        settings_store: SettingsStore,
        setup_service: SetupService,
        event_bus: EventBus | None = None,
        notifier: NotifierInterface | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize chat session.

        Args:
            backend: Query and history endpoints
            settings_store: Source of query settings
            setup_service: Provides the globally configured model id
            event_bus: Channel for directory synchronization events
            notifier: User-visible notifications
            clock: Returns the current instant for message timestamps
        """
        self.backend = backend
        self.settings_store = settings_store
        self.setup_service = setup_service
        self.event_bus = event_bus
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock

        self.conversation_id: str | None = None
        self.messages: list[ChatMessage] = []
        self.loading = False
        self.input_text = ""
        self.editing_index: int | None = None
        self.edit_buffer = ""
        self.user_scrolled_away = False

        self.query_settings: QuerySettings = DEFAULT_QUERY_SETTINGS.model_copy()
        self.available_models: list[ModelInfo] = []
        self.configured_model_id: str | None = None

        self._generation = 0
        self._scroll_pending = True
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    async def __aenter__(self) -> ChatSessionController:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def start(self) -> None:
        """Subscribe to directory events."""
        if self.event_bus is not None and not self._unsubscribers:
            self._unsubscribers.append(
                self.event_bus.subscribe(ActiveConversationDeleted, self._on_conversation_deleted)
            )

    async def aclose(self) -> None:
        """Release subscriptions, abandon in-flight requests and persist settings."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.settings_store.flush()
        self._generation += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.loading = False

    # ========== Settings ==========

    @property
    def available_model_ids(self) -> list[str]:
        return [model.id for model in self.available_models]

    async def initialize(self) -> None:
        """Fetch models and setup status, then load validated settings."""
        self.loading = True
        try:
            self.available_models = await self.backend.get_available_models()
            status = await self.setup_service.get_setup_status()
            self.configured_model_id = status.configured_model_id
        except TransportError as e:
            logger.error("Error fetching setup status: %s", e.detail)
        finally:
            self.reload_settings()
            self.loading = False

    def reload_settings(self) -> None:
        """Re-read settings from storage and repair them."""
        # A pending debounced save must land before storage is read back.
        self.settings_store.flush()
        self.query_settings = self.settings_store.load_validated(
            self.available_model_ids, self.configured_model_id
        )

    def update_settings(self, **changes: Any) -> QuerySettings:
        """Apply setting changes and schedule a debounced save.

        Args:
            **changes: Field values keyed by field name, e.g. ``temperature=0.2``

        Returns:
            The repaired settings now in effect

        Raises:
            TypeError: If a key is not a settings field
        """
        unknown = set(changes) - set(QuerySettings.model_fields)
        if unknown:
            raise TypeError(f"Unknown query settings: {', '.join(sorted(unknown))}")
        values = {
            name: getattr(self.query_settings, name) for name in QuerySettings.model_fields
        }
        values.update(changes)
        self.query_settings = self.settings_store.validate(
            QuerySettings.model_construct(**values),
            self.available_model_ids,
            self.configured_model_id,
        )
        self.settings_store.schedule_save(self.query_settings)
        return self.query_settings

    # ========== Conversation lifecycle ==========

    async def load_conversation(self, conversation_id: str) -> None:
        """Open a stored conversation, replacing the current transcript.

        A conversation that no longer exists resets the session.
        """
        self._generation += 1
        generation = self._generation
        self.cancel_edit()
        self.conversation_id = conversation_id
        self.messages = []
        self.loading = True
        self.user_scrolled_away = False
        self._publish(ActiveConversationChanged(conversation_id))

        try:
            conversation = await self.backend.get_conversation_history(conversation_id)
        except NotFoundError as e:
            if generation != self._generation:
                return
            logger.warning("Conversation %s not found; starting a new one.", conversation_id)
            self._notify(f"Error loading conversation: {e.detail}", NotificationLevel.ERROR)
            self.reset_session()
            return
        except TransportError as e:
            if generation != self._generation:
                return
            logger.error("Error fetching conversation history: %s", e.detail)
            self._notify(f"Error loading conversation: {e.detail}", NotificationLevel.ERROR)
            self.loading = False
            return

        if generation != self._generation:
            logger.debug("Ignoring history for superseded load of %s.", conversation_id)
            return
        self.messages = list(conversation.messages)
        self.conversation_id = conversation.conversation_id or conversation_id
        self.loading = False
        self._scroll_pending = True

    def reset_session(self) -> None:
        """Start a fresh conversation, abandoning any request and edit."""
        self._generation += 1
        self.conversation_id = None
        self.messages = []
        self.input_text = ""
        self.loading = False
        self.cancel_edit()
        self.user_scrolled_away = False
        self._scroll_pending = True
        self.reload_settings()
        self._publish(ActiveConversationChanged(None))

    # ========== Sending ==========

    def send_message(self, text: str | None = None) -> asyncio.Task | None:
        """Append a user message and query the backend.

        Args:
            text: Query text; the compose buffer ``input_text`` when omitted

        Returns:
            Task resolving when the response has been applied, or None when
            the send was a no-op (loading, editing or blank text)
        """
        query = self.input_text if text is None else text
        if self.loading or self.editing_index is not None or not query.strip():
            return None

        self._append(ChatMessage(role=MessageRole.USER, content=query, timestamp=self._now()))
        self.user_scrolled_away = False
        self.input_text = ""
        return self._issue_query(query)

    def _issue_query(self, query: str) -> asyncio.Task:
        self._generation += 1
        self.loading = True
        request = self._build_request(query)
        task = asyncio.get_running_loop().create_task(
            self._run_query(self._generation, request), name="chat-query"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _build_request(self, query: str) -> QueryRequest:
        settings = self.query_settings
        return QueryRequest(
            query=query,
            conversation_id=self.conversation_id,
            temperature=settings.temperature,
            llm_max_new_tokens=settings.llm_max_new_tokens,
            model_name=settings.model_id,
            use_re_ranker=settings.use_re_ranker,
            reranker_model_name=settings.reranker_model_name,
            re_ranker_top_n=settings.re_ranker_top_n,
        )

    async def _run_query(self, generation: int, request: QueryRequest) -> None:
        try:
            response = await self.backend.query(request)
        except Exception as e:  # noqa: BLE001 - every failure becomes an error message
            if generation != self._generation:
                logger.debug("Ignoring failure of superseded query: %s", e)
                return
            if isinstance(e, TransportError):
                detail = e.detail or "Failed to get response."
                logger.error("Error sending message: %s", detail)
            else:
                detail = str(e) or "Failed to get response."
                logger.exception("Unexpected error sending message.")
            self._append(
                ChatMessage(role=MessageRole.ERROR, content=f"Error: {detail}", timestamp=self._now())
            )
            self.input_text = request.query
            self.loading = False
            self._notify(detail, NotificationLevel.ERROR)
            return

        if generation != self._generation:
            logger.debug("Ignoring response to superseded query.")
            return

        self._append(
            ChatMessage(
                role=MessageRole.ASSISTANT,
                content=response.answer,
                sources=list(response.sources),
                timestamp=self._now(),
            )
        )
        if not self.conversation_id and response.conversation_id:
            self.conversation_id = response.conversation_id
            logger.info("Started conversation %s.", self.conversation_id)
            self._publish(ActiveConversationChanged(self.conversation_id))
            self._publish(ConversationListChanged(self.conversation_id))
        self.loading = False
        self.user_scrolled_away = False

    # ========== Editing ==========

    def start_edit(self, index: int) -> None:
        """Begin editing the user message at ``index``; other targets are ignored."""
        if not 0 <= index < len(self.messages):
            return
        if self.messages[index].role is not MessageRole.USER:
            return
        self.editing_index = index
        self.edit_buffer = self.messages[index].content

    def save_edit(self) -> asyncio.Task | None:
        """Rewrite the edited message, drop everything after it and re-query.

        A blank edit buffer cancels the edit instead.

        Returns:
            Task for the regenerated response, or None when nothing was sent
        """
        index = self.editing_index
        content = self.edit_buffer
        if index is None or index >= len(self.messages) or not content.strip():
            self.cancel_edit()
            return None

        original = self.messages[index]
        self.messages = self.messages[:index]
        self._append(original.model_copy(update={"content": content, "timestamp": self._now()}))
        self.cancel_edit()
        self.user_scrolled_away = False
        return self._issue_query(content)

    def cancel_edit(self) -> None:
        """Leave edit mode and discard the edit buffer."""
        self.editing_index = None
        self.edit_buffer = ""

    # ========== Scroll bookkeeping ==========

    @property
    def should_auto_scroll(self) -> bool:
        """True when new content arrived and the user has not scrolled away."""
        return self._scroll_pending and not self.user_scrolled_away

    def set_user_scrolled_away(self, scrolled_away: bool) -> None:
        self.user_scrolled_away = scrolled_away

    def acknowledge_scroll(self) -> None:
        """Clear the auto-scroll flag once the view has scrolled."""
        self._scroll_pending = False

    # ========== Helpers ==========

    def _append(self, message: ChatMessage) -> None:
        self.messages.append(message)
        self._scroll_pending = True

    def _now(self) -> datetime:
        now = as_utc(self._clock())
        previous = last_timestamp(self.messages)
        if previous is not None:
            # Keep timestamps non-decreasing in append order.
            now = max(now, previous)
        return now

    def _notify(self, message: str, level: NotificationLevel) -> None:
        self.notifier.notify(message, level)

    def _publish(self, event: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _on_conversation_deleted(self, event: ActiveConversationDeleted) -> None:
        if self.conversation_id is None:
            return
        if event.conversation_id is None or event.conversation_id == self.conversation_id:
            logger.info("Open conversation %s was deleted; resetting.", self.conversation_id)
            self.reset_session()

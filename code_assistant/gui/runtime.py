"""Bridge between Streamlit reruns and the asyncio session components.

Streamlit re-executes page scripts on every interaction, while the session
components need one long-lived event loop for their timers and requests.
``AssistantRuntime`` owns that loop on a background thread; pages hand work
to it with ``run``/``call`` and read component state for rendering.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

import streamlit as st

from code_assistant.config import Settings, get_settings
from code_assistant.interfaces.notifier_interface import NotificationLevel, NotifierInterface
from code_assistant.repositories.storage import JsonFileStorage
from code_assistant.services.api_client import BackendApiClient
from code_assistant.services.chat_session import ChatSessionController
from code_assistant.services.conversation_directory import ConversationDirectory
from code_assistant.services.indexing_monitor import IndexingJobMonitor
from code_assistant.services.settings_store import SettingsStore
from code_assistant.services.setup_service import SetupService
from code_assistant.utils.events import EventBus

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RUNTIME_KEY = "assistant_runtime"


class QueueNotifier(NotifierInterface):
    """Buffer notifications raised on the loop thread until a page shows them."""

    def __init__(self, maxlen: int = 50) -> None:
        self._messages: deque[tuple[str, NotificationLevel]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        with self._lock:
            self._messages.append((message, level))

    def drain(self) -> list[tuple[str, NotificationLevel]]:
        """Return and clear buffered notifications."""
        with self._lock:
            messages = list(self._messages)
            self._messages.clear()
        return messages


class AssistantRuntime:
    """Own the event loop thread and the components of one browser session."""

    def __init__(self, settings: Settings) -> None:
        """Start the loop thread and wire the session components.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self.loop.run_forever, name="assistant-loop", daemon=True
        )
        self._thread.start()

        self.notifier = QueueNotifier()
        self.storage = JsonFileStorage(settings.storage_path)
        self.event_bus = EventBus()
        self.client = BackendApiClient(settings.api_base_url, timeout=settings.request_timeout)
        self.setup = SetupService(self.storage)
        self.settings_store = SettingsStore(
            self.storage,
            save_delay=settings.settings_save_delay,
            on_saved=lambda _: self.notifier.notify("Settings saved", NotificationLevel.SUCCESS),
        )
        self.chat = ChatSessionController(
            self.client,
            self.settings_store,
            self.setup,
            event_bus=self.event_bus,
            notifier=self.notifier,
        )
        self.directory = ConversationDirectory(
            self.client,
            event_bus=self.event_bus,
            notifier=self.notifier,
            refresh_interval=settings.conversation_refresh_interval,
            search_delay=settings.search_delay,
        )
        self.indexing = IndexingJobMonitor(
            self.client,
            self.storage,
            notifier=self.notifier,
            poll_interval=settings.indexing_poll_interval,
        )
        self.run(self._start())
        logger.info("Assistant runtime started against %s.", settings.api_base_url)

    async def _start(self) -> None:
        await self.chat.start()
        await self.chat.initialize()
        await self.directory.start()

    async def _shutdown(self) -> None:
        await self.indexing.aclose()
        await self.directory.aclose()
        await self.chat.aclose()
        await self.client.aclose()

    def run(self, coro: Awaitable[T], timeout: float | None = None) -> T:
        """Run a coroutine on the loop thread and wait for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call a synchronous component method on the loop thread."""

        async def invoke() -> T:
            return fn(*args, **kwargs)

        return self.run(invoke())

    def wait_for(self, task: asyncio.Task | None, timeout: float | None = None) -> None:
        """Block until a task created on the loop thread has finished."""
        if task is None:
            return

        async def join() -> None:
            await asyncio.wait({task})

        self.run(join(), timeout)

    def close(self) -> None:
        """Tear down the components and stop the loop thread."""
        self.run(self._shutdown())
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)


def get_runtime() -> AssistantRuntime:
    """Return the runtime for the current Streamlit session, creating it once."""
    if _RUNTIME_KEY not in st.session_state:
        st.session_state[_RUNTIME_KEY] = AssistantRuntime(get_settings())
    return st.session_state[_RUNTIME_KEY]


def show_notifications(runtime: AssistantRuntime) -> None:
    """Render buffered notifications as toasts."""
    icons = {
        NotificationLevel.SUCCESS: ":material/check_circle:",
        NotificationLevel.INFO: ":material/info:",
        NotificationLevel.ERROR: ":material/error:",
    }
    for message, level in runtime.notifier.drain():
        st.toast(message, icon=icons[level])

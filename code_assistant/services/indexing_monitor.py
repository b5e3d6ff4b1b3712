"""Poll a background codebase-indexing job until it finishes."""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from code_assistant.exceptions import TransportError
from code_assistant.interfaces.backend_interface import IndexingBackendInterface
from code_assistant.interfaces.notifier_interface import (
    LoggingNotifier,
    NotificationLevel,
    NotifierInterface,
)
from code_assistant.interfaces.storage_interface import PersistencePort
from code_assistant.models.indexing import IndexingJob, IndexingStatus
from code_assistant.utils.timing import PeriodicTask

logger = logging.getLogger(__name__)

CODEBASE_PATH_KEY = "codebasePath"
MIN_PATH_LENGTH = 3
PATH_MARKER = "Path: "


class IndexingJobMonitor:
    """Track one indexing job and poll it while it is active.

    Polling starts immediately, repeats every ``poll_interval`` seconds and
    stops after delivering the first snapshot that is not STARTED or RUNNING
    (COMPLETED, FAILED or IDLE), or on the first transport error. Only one
    polling loop runs at a time.

    Usage:
        async with IndexingJobMonitor(client, storage, on_update=print) as monitor:
            await monitor.start("/srv/repos/api")
            await monitor.wait_stopped()
    """

    def __init__(
        self,
        backend: IndexingBackendInterface,
        storage: PersistencePort,
        notifier: NotifierInterface | None = None,
        poll_interval: float = 3.0,
        on_update: Callable[[IndexingJob], None] | None = None,
    ) -> None:
        """Initialize indexing monitor.

        Args:
            backend: Indexing endpoints
            storage: Persistence port remembering the last codebase path
            notifier: User-visible notifications
            poll_interval: Seconds between status polls
            on_update: Called with every snapshot the monitor adopts
        """
        self.backend = backend
        self.storage = storage
        self.notifier = notifier or LoggingNotifier()
        self.on_update = on_update

        self.job: IndexingJob | None = None
        self.loading = False
        self.error: str | None = None
        self.codebase_path: str = storage.get_item(CODEBASE_PATH_KEY) or ""

        self._poller = PeriodicTask(poll_interval, self._poll_once, immediate=True, name="indexing-poll")

    async def __aenter__(self) -> IndexingJobMonitor:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.stop()

    @property
    def is_polling(self) -> bool:
        return self._poller.running

    # ========== Commands ==========

    async def fetch_current_status(self) -> IndexingJob | None:
        """Load the current job snapshot and resume polling if it is active."""
        self.loading = True
        try:
            job = await self.backend.get_indexing_status()
        except TransportError as e:
            logger.error("Error fetching initial indexing status: %s", e.detail)
            self.error = e.detail
            self._notify("Could not fetch indexing status.", NotificationLevel.ERROR)
            return None
        finally:
            self.loading = False

        self._deliver(job)
        path = _path_from_details(job.details)
        if path and not self.codebase_path:
            self.codebase_path = path
        if job.status.is_active:
            self.start_polling()
        return job

    async def start(self, path: str) -> str | None:
        """Start indexing ``path`` and poll the new job.

        Args:
            path: Codebase path on the backend host

        Returns:
            None on success, otherwise a message describing the failure
        """
        path = (path or "").strip()
        if len(path) < MIN_PATH_LENGTH:
            message = "Please provide a valid codebase path."
            self._notify(message, NotificationLevel.ERROR)
            return message

        self.codebase_path = path
        self.storage.set_item(CODEBASE_PATH_KEY, path)
        self.loading = True
        self.error = None
        try:
            job = await self.backend.start_indexing(path)
        except TransportError as e:
            logger.error("Error starting indexing for %s: %s", path, e.detail)
            self._deliver(_job_from_error(e))
            self.error = e.detail
            message = f"Error starting indexing: {e.detail}"
            self._notify(message, NotificationLevel.ERROR)
            return message
        finally:
            self.loading = False

        self._deliver(job)
        self._notify(f"Indexing process initiated for: {path}", NotificationLevel.SUCCESS)
        if job.status.is_active:
            self.start_polling()
        return None

    def start_polling(self) -> None:
        """Begin the polling loop; a no-op while one is already running."""
        if self.is_polling:
            return
        logger.info("Starting indexing status polling.")
        self._poller.start()

    def stop(self) -> None:
        """Cancel polling; safe to call at any time."""
        if self.is_polling:
            logger.info("Indexing status polling stopped.")
        self._poller.stop()

    async def wait_stopped(self) -> None:
        """Wait until the current polling loop ends."""
        await self._poller.wait()

    # ========== Derived views ==========

    @property
    def progress_percent(self) -> float:
        if self.job is None or self.job.progress is None:
            return 0.0
        return self.job.progress * 100

    @property
    def is_progress_visible(self) -> bool:
        return (
            self.job is not None
            and self.job.status is IndexingStatus.RUNNING
            and self.job.progress is not None
            and self.job.progress > 0
        )

    @property
    def status_summary(self) -> str:
        if self.job is None:
            return "Status unknown."
        summary = f"Status: {self.job.status.value}"
        if self.is_progress_visible:
            summary += f" ({self.progress_percent:.1f}%)"
        if self.job.details:
            summary += f" - {self.job.details}"
        return summary

    # ========== Internals ==========

    async def _poll_once(self) -> bool:
        """Fetch one snapshot; returns False to end the loop."""
        try:
            job = await self.backend.get_indexing_status()
        except TransportError as e:
            logger.error("Error polling indexing status: %s", e.detail)
            self.error = e.detail
            self._notify("Error polling status.", NotificationLevel.ERROR)
            return False

        logger.debug("Polled indexing status: %s", job)
        self._deliver(job)
        if job.status.is_active:
            return True

        # Any inactive status ends the loop; IDLE means the job is gone.
        if job.status is IndexingStatus.COMPLETED:
            self._notify("Indexing completed successfully!", NotificationLevel.SUCCESS)
        elif job.status is IndexingStatus.FAILED:
            self._notify(
                f"Indexing failed: {job.details or 'Unknown reason'}", NotificationLevel.ERROR
            )
        else:
            logger.info("Indexing job is no longer active (%s).", job.status.value)
        return False

    def _deliver(self, job: IndexingJob) -> None:
        self.job = job
        if self.on_update is not None:
            self.on_update(job)

    def _notify(self, message: str, level: NotificationLevel) -> None:
        self.notifier.notify(message, level)


def _path_from_details(details: str | None) -> str | None:
    """Extract ``<path>`` from details such as ``"Indexing... Path: /src/app (42 files)"``."""
    if not details or PATH_MARKER not in details:
        return None
    tail = details.split(PATH_MARKER, 1)[1].split()
    return tail[0] if tail else None


def _job_from_error(error: TransportError) -> IndexingJob:
    """Use the error body as a snapshot when it is one, else a generic failure."""
    if isinstance(error.payload, dict):
        try:
            return IndexingJob.model_validate(error.payload)
        except ValidationError:
            pass
    return IndexingJob(
        status=IndexingStatus.FAILED, progress=0.0, details="Unknown error during start."
    )

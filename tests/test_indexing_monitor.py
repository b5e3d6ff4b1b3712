"""Tests for the indexing job monitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from code_assistant.exceptions import TransportError
from code_assistant.interfaces.notifier_interface import NotificationLevel
from code_assistant.models.indexing import IndexingJob, IndexingStatus
from code_assistant.repositories.storage import InMemoryStorage
from code_assistant.services.indexing_monitor import CODEBASE_PATH_KEY, IndexingJobMonitor


def job(status, progress=None, details=None):
    return IndexingJob(job_id="job-1", status=status, progress=progress, details=details)


@pytest.fixture
def backend():
    """Mock indexing backend."""
    mock = AsyncMock()
    mock.start_indexing.return_value = job(IndexingStatus.STARTED, 0.0)
    return mock


@pytest.fixture
def storage():
    """In-memory persistence port."""
    return InMemoryStorage()


@pytest.fixture
def notifier():
    """Mock notifier."""
    return MagicMock()


@pytest.fixture
def snapshots():
    """Collected on_update snapshots."""
    return []


@pytest.fixture
def monitor(backend, storage, notifier, snapshots):
    """Monitor polling without delay."""
    return IndexingJobMonitor(
        backend, storage, notifier=notifier, poll_interval=0, on_update=snapshots.append
    )


@pytest.mark.asyncio
async def test_polls_until_completed(monitor, backend, snapshots, notifier):
    """Test that every snapshot up to the terminal one is delivered, then polling stops."""
    # Arrange
    backend.get_indexing_status.side_effect = [
        job(IndexingStatus.RUNNING, 0.4),
        job(IndexingStatus.RUNNING, 0.8),
        job(IndexingStatus.COMPLETED, 1.0),
    ]

    # Act
    assert await monitor.start("/srv/repos/api") is None
    await monitor.wait_stopped()

    # Assert
    assert [(s.status, s.progress) for s in snapshots] == [
        (IndexingStatus.STARTED, 0.0),
        (IndexingStatus.RUNNING, 0.4),
        (IndexingStatus.RUNNING, 0.8),
        (IndexingStatus.COMPLETED, 1.0),
    ]
    assert backend.get_indexing_status.await_count == 3
    assert monitor.is_polling is False
    notifier.notify.assert_called_with(
        "Indexing completed successfully!", NotificationLevel.SUCCESS
    )


@pytest.mark.asyncio
async def test_polls_until_failed(monitor, backend, snapshots, notifier):
    """Test that a FAILED snapshot is delivered and ends polling."""
    backend.get_indexing_status.side_effect = [
        job(IndexingStatus.RUNNING, 0.1),
        job(IndexingStatus.FAILED, 0.1, "Out of disk space"),
    ]

    await monitor.start("/srv/repos/api")
    await monitor.wait_stopped()

    assert snapshots[-1].status is IndexingStatus.FAILED
    assert len(snapshots) == 3
    notifier.notify.assert_called_with(
        "Indexing failed: Out of disk space", NotificationLevel.ERROR
    )


@pytest.mark.asyncio
async def test_transport_error_stops_polling(monitor, backend, snapshots):
    """Test that a poll failure ends the loop without retrying."""
    backend.get_indexing_status.side_effect = [
        job(IndexingStatus.RUNNING, 0.5),
        TransportError("connection reset"),
        job(IndexingStatus.RUNNING, 0.6),
    ]

    await monitor.start("/srv/repos/api")
    await monitor.wait_stopped()

    assert backend.get_indexing_status.await_count == 2
    assert monitor.error == "connection reset"
    assert monitor.job.progress == 0.5
    assert len(snapshots) == 2


@pytest.mark.asyncio
async def test_only_one_polling_loop(monitor, backend):
    """Test that starting polling twice does not start a second loop."""
    # Arrange
    release = asyncio.Event()

    async def status():
        await release.wait()
        return job(IndexingStatus.COMPLETED, 1.0)

    backend.get_indexing_status.side_effect = status

    # Act
    monitor.start_polling()
    monitor.start_polling()
    await asyncio.sleep(0)
    monitor.start_polling()
    release.set()
    await monitor.wait_stopped()

    # Assert
    assert backend.get_indexing_status.await_count == 1


@pytest.mark.asyncio
async def test_stop_is_idempotent(monitor, backend):
    """Test that stop can be called while idle, running and stopped."""
    backend.get_indexing_status.return_value = job(IndexingStatus.RUNNING, 0.2)

    monitor.stop()
    monitor.start_polling()
    await asyncio.sleep(0.01)
    monitor.stop()
    monitor.stop()
    await asyncio.sleep(0.01)

    assert monitor.is_polling is False
    count = backend.get_indexing_status.await_count
    await asyncio.sleep(0.01)
    assert backend.get_indexing_status.await_count == count


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["", "  ", "ab", " /a "])
async def test_start_rejects_short_paths(monitor, backend, notifier, path):
    """Test path validation before any request is made."""
    result = await monitor.start(path)

    assert result == "Please provide a valid codebase path."
    backend.start_indexing.assert_not_awaited()
    notifier.notify.assert_called_once_with(result, NotificationLevel.ERROR)


@pytest.mark.asyncio
async def test_start_persists_trimmed_path(monitor, backend, storage):
    """Test that the last used path is remembered."""
    backend.start_indexing.return_value = job(IndexingStatus.COMPLETED, 1.0)

    await monitor.start("  /srv/repos/api  ")

    backend.start_indexing.assert_awaited_once_with("/srv/repos/api")
    assert storage.get_item(CODEBASE_PATH_KEY) == "/srv/repos/api"
    assert monitor.codebase_path == "/srv/repos/api"
    assert monitor.is_polling is False


def test_codebase_path_loaded_from_storage(backend):
    """Test that a new monitor starts with the remembered path."""
    storage = InMemoryStorage({CODEBASE_PATH_KEY: "/srv/repos/web"})

    assert IndexingJobMonitor(backend, storage).codebase_path == "/srv/repos/web"


@pytest.mark.asyncio
async def test_start_error_uses_error_body_as_snapshot(monitor, backend, snapshots):
    """Test that an error body shaped like a job becomes the current job."""
    backend.start_indexing.side_effect = TransportError(
        "Path does not exist",
        status_code=400,
        payload={"status": "FAILED", "progress": 0, "details": "Path does not exist"},
    )

    result = await monitor.start("/missing")

    assert result == "Error starting indexing: Path does not exist"
    assert snapshots[-1].status is IndexingStatus.FAILED
    assert snapshots[-1].details == "Path does not exist"
    assert monitor.is_polling is False
    assert monitor.loading is False


@pytest.mark.asyncio
async def test_start_error_without_body(monitor, backend):
    """Test the generic failure snapshot."""
    backend.start_indexing.side_effect = TransportError("timed out")

    await monitor.start("/srv/repos/api")

    assert monitor.job.status is IndexingStatus.FAILED
    assert monitor.job.details == "Unknown error during start."
    assert monitor.error == "timed out"


@pytest.mark.asyncio
async def test_fetch_current_status_resumes_active_job(monitor, backend):
    """Test that an active job found on load is polled and its path adopted."""
    # Arrange
    release = asyncio.Event()
    running = job(IndexingStatus.RUNNING, 0.3, "Indexing... Path: /src/app (42 files)")

    async def status():
        if backend.get_indexing_status.await_count > 1:
            await release.wait()
        return running

    backend.get_indexing_status.side_effect = status

    # Act
    result = await monitor.fetch_current_status()
    await asyncio.sleep(0)

    # Assert
    assert result == running
    assert monitor.codebase_path == "/src/app"
    assert monitor.is_polling is True
    await monitor.aclose()
    assert monitor.is_polling is False


@pytest.mark.asyncio
async def test_fetch_current_status_idle_job(monitor, backend):
    """Test that an idle job is shown without polling."""
    backend.get_indexing_status.return_value = job(
        IndexingStatus.IDLE, 0.0, "No indexing process is active."
    )

    await monitor.fetch_current_status()

    assert monitor.is_polling is False
    assert monitor.error is None
    assert monitor.status_summary == "Status: IDLE - No indexing process is active."


@pytest.mark.asyncio
async def test_polling_ends_quietly_when_job_goes_idle(monitor, backend, snapshots, notifier):
    """Test that an IDLE snapshot is delivered and ends polling without an error."""
    # Arrange
    backend.get_indexing_status.side_effect = [
        job(IndexingStatus.RUNNING, 0.6),
        job(IndexingStatus.IDLE, 0.0, "No indexing process is active."),
        job(IndexingStatus.RUNNING, 0.9),
    ]

    # Act
    await monitor.start("/srv/repos/api")
    await monitor.wait_stopped()

    # Assert
    assert [s.status for s in snapshots] == [
        IndexingStatus.STARTED,
        IndexingStatus.RUNNING,
        IndexingStatus.IDLE,
    ]
    assert backend.get_indexing_status.await_count == 2
    assert monitor.error is None
    levels = [c.args[1] for c in notifier.notify.call_args_list]
    assert NotificationLevel.ERROR not in levels


@pytest.mark.asyncio
async def test_fetch_current_status_error(monitor, backend):
    """Test that a failed status fetch is reported."""
    backend.get_indexing_status.side_effect = TransportError("unreachable")

    assert await monitor.fetch_current_status() is None
    assert monitor.error == "unreachable"
    assert monitor.loading is False


def test_derived_views(monitor):
    """Test progress visibility and the status line."""
    assert monitor.status_summary == "Status unknown."
    assert monitor.is_progress_visible is False

    monitor.job = job(IndexingStatus.RUNNING, 0.425, "Embedding files")
    assert monitor.is_progress_visible is True
    assert monitor.progress_percent == pytest.approx(42.5)
    assert monitor.status_summary == "Status: RUNNING (42.5%) - Embedding files"

    monitor.job = job(IndexingStatus.RUNNING, 0.0)
    assert monitor.is_progress_visible is False

    monitor.job = job(IndexingStatus.COMPLETED, 1.0)
    assert monitor.is_progress_visible is False
    assert monitor.status_summary == "Status: COMPLETED"

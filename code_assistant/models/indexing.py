"""Indexing job data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class IndexingStatus(str, Enum):
    """Lifecycle states of a codebase indexing job."""

    NOT_STARTED = "NOT_STARTED"
    IDLE = "IDLE"
    STARTED = "STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_active(self) -> bool:
        return self in (IndexingStatus.STARTED, IndexingStatus.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return self in (IndexingStatus.COMPLETED, IndexingStatus.FAILED)


class IndexingJob(BaseModel):
    """Snapshot of the indexing job as reported by the backend."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    job_id: str | None = None
    status: IndexingStatus
    progress: float | None = None
    details: str | None = None


class IndexRequest(BaseModel):
    """Request body for starting an indexing job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    codebase_path: str

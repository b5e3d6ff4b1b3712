"""Chat data models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model using the backend's camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceReference(CamelModel):
    """Code segment returned alongside an assistant answer."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    start_line: int
    end_line: int
    snippet: str | None = None
    score: float | None = None
    language: str | None = None


class MessageRole(str, Enum):
    """Chat message roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    ERROR = "error"


class ChatMessage(CamelModel):
    """Chat message model."""

    role: MessageRole
    content: str
    timestamp: datetime | None = None
    sources: list[SourceReference] = Field(default_factory=list)


class Conversation(CamelModel):
    """Server-side conversation as listed in the history."""

    conversation_id: str | None = None
    title: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    messages: list[ChatMessage] = Field(default_factory=list)

    def effective_timestamp(self) -> datetime | None:
        """Return the instant used to order conversations.

        Returns:
            ``updated_at``, else the latest message timestamp that is set,
            else ``created_at``, else None
        """
        if self.updated_at:
            return as_utc(self.updated_at)
        last_sent = last_timestamp(self.messages)
        if last_sent is not None:
            return last_sent
        if self.created_at:
            return as_utc(self.created_at)
        return None


class QueryRequest(CamelModel):
    """Outbound query carrying the session's query settings."""

    query: str
    conversation_id: str | None = None
    temperature: float | None = None
    llm_max_new_tokens: int | None = None
    model_name: str | None = None
    use_re_ranker: bool | None = None
    reranker_model_name: str | None = None
    re_ranker_top_n: int | None = None


class QueryResponse(CamelModel):
    """Backend answer for a query."""

    answer: str
    conversation_id: str | None = None
    sources: list[SourceReference] = Field(default_factory=list)


def last_timestamp(messages: list[ChatMessage]) -> datetime | None:
    """Return the timestamp of the last message that has one, as UTC."""
    for message in reversed(messages):
        if message.timestamp is not None:
            return as_utc(message.timestamp)
    return None


def as_utc(value: datetime) -> datetime:
    """Return an aware datetime; naive values from the backend are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value

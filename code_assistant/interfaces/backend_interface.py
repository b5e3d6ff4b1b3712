"""Backend service interfaces for dependency inversion."""

from abc import ABC, abstractmethod

from code_assistant.models.chat import Conversation, QueryRequest, QueryResponse
from code_assistant.models.indexing import IndexingJob
from code_assistant.models.setup import ModelInfo


class ChatBackendInterface(ABC):
    """Abstract interface for the query and history endpoints."""

    @abstractmethod
    async def query(self, request: QueryRequest) -> QueryResponse:
        """Send a query to the retrieval/LLM backend.

        Args:
            request: Query text, conversation id and query settings

        Returns:
            Answer, (possibly new) conversation id and sources

        Raises:
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """List all stored conversations.

        Raises:
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def get_conversation_history(self, conversation_id: str) -> Conversation:
        """Fetch one conversation with its messages.

        Raises:
            NotFoundError: If the conversation no longer exists
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete one conversation.

        Raises:
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def delete_all_conversations(self) -> None:
        """Delete every conversation.

        Raises:
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def get_available_models(self) -> list[ModelInfo]:
        """List models offered by the backend.

        Returns:
            Available models; empty on any failure
        """
        pass


class IndexingBackendInterface(ABC):
    """Abstract interface for the indexing endpoints."""

    @abstractmethod
    async def start_indexing(self, codebase_path: str) -> IndexingJob:
        """Start indexing a codebase.

        Args:
            codebase_path: Path of the codebase on the backend host

        Returns:
            Snapshot of the newly started job

        Raises:
            TransportError: If the request fails
        """
        pass

    @abstractmethod
    async def get_indexing_status(self) -> IndexingJob:
        """Fetch the current indexing job snapshot.

        Raises:
            TransportError: If the request fails
        """
        pass

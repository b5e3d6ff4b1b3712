"""HTTP client for the code-assistant backend."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from code_assistant.exceptions import NotFoundError, TransportError
from code_assistant.interfaces.backend_interface import (
    ChatBackendInterface,
    IndexingBackendInterface,
)
from code_assistant.models.chat import Conversation, QueryRequest, QueryResponse
from code_assistant.models.indexing import IndexingJob, IndexRequest
from code_assistant.models.setup import ModelInfo

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"
HISTORY_PATH = "/api/v1/history"
CONFIG_PATH = "/api/v1/config"
INDEX_PATH = "/api/v1/index"


class BackendApiClient(ChatBackendInterface, IndexingBackendInterface):
    """Async REST client; every failure surfaces as ``TransportError``.

    Usage:
        async with BackendApiClient("http://localhost:8080") as client:
            response = await client.query(QueryRequest(query="Where is auth?"))
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend root URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> BackendApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """Send a request and decode its JSON body.

        Returns:
            Decoded body, or None for an empty response

        Raises:
            NotFoundError: On HTTP 404
            TransportError: On network errors, other error statuses or bad JSON
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            payload = _decode(response)
            detail = _extract_detail(response, payload)
            logger.warning("%s %s returned %s: %s", method, path, response.status_code, detail)
            error_cls = NotFoundError if response.status_code == 404 else TransportError
            raise error_cls(detail, status_code=response.status_code, payload=payload)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Malformed response from {path}", status_code=response.status_code
            ) from e

    async def query(self, request: QueryRequest) -> QueryResponse:
        body = request.model_dump(by_alias=True, exclude_none=True)
        data = await self._request("POST", QUERY_PATH, json=body)
        return _parse(QueryResponse, data, QUERY_PATH)

    async def list_conversations(self) -> list[Conversation]:
        data = await self._request("GET", HISTORY_PATH)
        if not isinstance(data, list):
            raise TransportError(f"Malformed response from {HISTORY_PATH}")
        return [_parse(Conversation, item, HISTORY_PATH) for item in data]

    async def get_conversation_history(self, conversation_id: str) -> Conversation:
        path = f"{HISTORY_PATH}/{conversation_id}"
        data = await self._request("GET", path)
        return _parse(Conversation, data, path)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"{HISTORY_PATH}/{conversation_id}")

    async def delete_all_conversations(self) -> None:
        await self._request("DELETE", f"{HISTORY_PATH}/all")

    async def get_available_models(self) -> list[ModelInfo]:
        path = f"{CONFIG_PATH}/models"
        try:
            data = await self._request("GET", path)
        except TransportError:
            logger.exception("Error fetching available models from backend.")
            return []
        if not isinstance(data, list):
            logger.warning("%s did not return a list; using no models. Response: %s", path, data)
            return []
        models = []
        for item in data:
            try:
                models.append(ModelInfo.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed model entry: %s", item)
        return models

    async def start_indexing(self, codebase_path: str) -> IndexingJob:
        path = f"{INDEX_PATH}/start"
        body = IndexRequest(codebase_path=codebase_path).model_dump(by_alias=True)
        data = await self._request("POST", path, json=body)
        return _parse(IndexingJob, data, path)

    async def get_indexing_status(self) -> IndexingJob:
        path = f"{INDEX_PATH}/status"
        data = await self._request("GET", path)
        return _parse(IndexingJob, data, path)


def _parse(model: Any, data: Any, path: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TransportError(f"Malformed response from {path}") from e


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _extract_detail(response: httpx.Response, payload: Any) -> str:
    """Pick the most useful human-readable failure text from an error response."""
    if isinstance(payload, dict):
        for key in ("detail", "message", "details"):
            value = payload.get(key)
            if value:
                return str(value)
    text = response.text.strip()
    if text and not isinstance(payload, dict):
        return text
    return f"HTTP {response.status_code}"

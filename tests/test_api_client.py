"""Tests for the backend HTTP client."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from code_assistant.exceptions import NotFoundError, TransportError
from code_assistant.models.chat import MessageRole, QueryRequest
from code_assistant.models.indexing import IndexingStatus
from code_assistant.services.api_client import BackendApiClient


def make_client(handler):
    """Build a client whose requests are answered by ``handler``."""
    return BackendApiClient("http://backend.test/", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_query_sends_camel_case_body_without_nulls():
    """Test the query request and response mapping."""
    # Arrange
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "answer": "It lives in auth/middleware.py",
                "conversationId": "conv-1",
                "sources": [
                    {
                        "filePath": "auth/middleware.py",
                        "startLine": 1,
                        "endLine": 20,
                        "snippet": "class AuthMiddleware: ...",
                        "score": 0.8,
                    }
                ],
            },
        )

    # Act
    async with make_client(handler) as client:
        response = await client.query(
            QueryRequest(query="Where is auth?", temperature=0.7, use_re_ranker=False)
        )

    # Assert
    assert seen["method"] == "POST"
    assert seen["url"] == "http://backend.test/api/v1/query"
    assert seen["body"] == {"query": "Where is auth?", "temperature": 0.7, "useReRanker": False}
    assert response.conversation_id == "conv-1"
    assert response.sources[0].file_path == "auth/middleware.py"
    assert response.sources[0].language is None


@pytest.mark.asyncio
async def test_history_endpoints():
    """Test listing, fetching and deleting conversations."""
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        if request.method == "DELETE":
            return httpx.Response(204)
        if request.url.path == "/api/v1/history":
            return httpx.Response(200, json=[{"conversationId": "c1", "title": "First"}])
        return httpx.Response(
            200,
            json={
                "conversationId": "c1",
                "messages": [
                    {"role": "user", "content": "hi", "timestamp": "2024-01-01T10:00:00Z"}
                ],
            },
        )

    async with make_client(handler) as client:
        listed = await client.list_conversations()
        history = await client.get_conversation_history("c1")
        await client.delete_conversation("c1")
        await client.delete_all_conversations()

    assert listed[0].title == "First"
    assert history.messages[0].role is MessageRole.USER
    assert calls == [
        ("GET", "/api/v1/history"),
        ("GET", "/api/v1/history/c1"),
        ("DELETE", "/api/v1/history/c1"),
        ("DELETE", "/api/v1/history/all"),
    ]


@pytest.mark.asyncio
async def test_missing_conversation_raises_not_found():
    """Test that 404 maps to NotFoundError with the server detail."""

    def handler(request):
        return httpx.Response(404, json={"detail": "Conversation not found"})

    async with make_client(handler) as client:
        with pytest.raises(NotFoundError) as exc_info:
            await client.get_conversation_history("gone")

    assert exc_info.value.detail == "Conversation not found"
    assert exc_info.value.status_code == 404


@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(500, json={"message": "LLM crashed"}), "LLM crashed"),
        (httpx.Response(400, json={"details": "Bad path"}), "Bad path"),
        (httpx.Response(502, text="Bad Gateway"), "Bad Gateway"),
        (httpx.Response(503), "HTTP 503"),
        (httpx.Response(500, json={"error": True}), "HTTP 500"),
    ],
)
@pytest.mark.asyncio
async def test_error_detail_extraction(response, expected):
    """Test the detail picked from different error bodies."""
    async with make_client(lambda request: response) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.query(QueryRequest(query="q"))

    assert exc_info.value.detail == expected
    assert not isinstance(exc_info.value, NotFoundError)


@pytest.mark.asyncio
async def test_network_error_becomes_transport_error():
    """Test that connection failures are wrapped."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(TransportError, match="connection refused"):
            await client.list_conversations()


@pytest.mark.asyncio
async def test_malformed_response_becomes_transport_error():
    """Test that unexpected bodies are reported as transport errors."""

    def handler(request):
        if request.url.path == "/api/v1/history":
            return httpx.Response(200, json={"not": "a list"})
        return httpx.Response(200, text="<html>")

    async with make_client(handler) as client:
        with pytest.raises(TransportError):
            await client.list_conversations()
        with pytest.raises(TransportError):
            await client.query(QueryRequest(query="q"))


@pytest.mark.asyncio
async def test_available_models_skips_bad_entries():
    """Test that malformed model entries are dropped."""

    def handler(request):
        return httpx.Response(
            200, json=[{"id": "llama3:8b", "name": "Llama 3"}, {"name": "no id"}, "junk"]
        )

    async with make_client(handler) as client:
        models = await client.get_available_models()

    assert [model.id for model in models] == ["llama3:8b"]


@pytest.mark.parametrize(
    "response",
    [httpx.Response(500), httpx.Response(200, json={"models": []})],
)
@pytest.mark.asyncio
async def test_available_models_empty_on_failure(response):
    """Test that model discovery degrades to an empty list."""
    async with make_client(lambda request: response) as client:
        assert await client.get_available_models() == []


@pytest.mark.asyncio
async def test_indexing_endpoints():
    """Test starting and polling an indexing job."""
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, request.content))
        if request.url.path == "/api/v1/index/start":
            return httpx.Response(202, json={"jobId": "j1", "status": "STARTED", "progress": 0})
        return httpx.Response(
            200, json={"jobId": "j1", "status": "RUNNING", "progress": 0.5, "details": "Path: /src"}
        )

    async with make_client(handler) as client:
        started = await client.start_indexing("/src")
        status = await client.get_indexing_status()

    assert started.status is IndexingStatus.STARTED
    assert started.job_id == "j1"
    assert status.progress == 0.5
    assert json.loads(seen[0][2]) == {"codebasePath": "/src"}
    assert seen[1][:2] == ("GET", "/api/v1/index/status")


@pytest.mark.asyncio
async def test_idle_indexing_status_is_parsed():
    """Test the status the backend reports when no job is running."""

    def handler(request):
        return httpx.Response(
            200,
            json={"status": "IDLE", "progress": 0.0, "details": "No indexing process is active."},
        )

    async with make_client(handler) as client:
        status = await client.get_indexing_status()

    assert status.status is IndexingStatus.IDLE
    assert status.status.is_active is False


@pytest.mark.asyncio
async def test_query_accepts_source_without_snippet():
    """Test that a null snippet does not fail the whole answer."""

    def handler(request):
        return httpx.Response(
            200,
            json={
                "answer": "See the indexer",
                "conversationId": "conv-1",
                "sources": [
                    {"filePath": "indexer.py", "startLine": 1, "endLine": 9, "snippet": None}
                ],
            },
        )

    async with make_client(handler) as client:
        response = await client.query(QueryRequest(query="Where is indexing?"))

    assert response.answer == "See the indexer"
    assert response.sources[0].snippet is None


@pytest.mark.asyncio
async def test_history_accepts_messages_without_timestamp():
    """Test that one untimed message does not fail the conversation list."""

    def handler(request):
        return httpx.Response(
            200,
            json=[
                {
                    "conversationId": "c1",
                    "messages": [
                        {"role": "user", "content": "hi", "timestamp": "2024-01-01T10:00:00Z"},
                        {"role": "assistant", "content": "hello", "timestamp": None},
                    ],
                }
            ],
        )

    async with make_client(handler) as client:
        listed = await client.list_conversations()

    assert listed[0].messages[1].timestamp is None
    assert listed[0].effective_timestamp() == datetime(2024, 1, 1, 10, tzinfo=UTC)

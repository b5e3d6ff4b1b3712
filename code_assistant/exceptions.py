"""Errors raised by the backend client."""

from __future__ import annotations

from typing import Any


class AssistantClientError(Exception):
    """Base class for client errors."""


class TransportError(AssistantClientError):
    """A backend request failed (network error, error status or bad body)."""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        """Initialize the error.

        Args:
            detail: Human-readable failure detail
            status_code: HTTP status code when a response was received
            payload: Decoded error body, if any
        """
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.payload = payload


class NotFoundError(TransportError):
    """The requested resource no longer exists on the backend."""

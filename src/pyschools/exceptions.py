"""Custom exception hierarchy for pyschools."""

from __future__ import annotations

from typing import Any


class SchoolsError(Exception):
    """Base exception for all pyschools errors."""


class SchoolsConfigError(SchoolsError):
    """Invalid or missing configuration."""


class SchoolsTransportError(SchoolsError):
    """HTTP or websocket level failure (network, invalid JSON, closed socket)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SchoolsApiError(SchoolsError):
    """The backend answered with an error body.

    PostgREST errors carry ``code``, ``message``, ``details`` and ``hint``;
    all of them are kept so callers can log the full picture.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
        status_code: int | None = None,
        details: Any = None,
        hint: Any = None,
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        self.status_code = status_code
        self.details = details
        self.hint = hint
        super().__init__(message)


class _EngineError(SchoolsError):
    """Error reported by the reconciliation engine.

    ``message`` is the backend-reported message (or the local validation
    failure); the original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.message = message
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if operation else message)


class FetchError(_EngineError):
    """A full refresh of the collection failed."""


class SubscriptionError(_EngineError):
    """Opening or closing the change feed failed."""


class MutationError(_EngineError):
    """An insert, update or delete request failed."""

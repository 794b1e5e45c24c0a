"""Application-level exception types.

This module defines the errors raised by the storage adapters, the
configuration resolver and the pipeline setup, enabling consistent error
handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes flexible while encouraging
    consistent keys across adapters.
    """

    code: str
    message: str
    hint: str
    storage: str
    operation: str
    key_hash: str
    http_status: int
    reply_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for rate limiting failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised at setup when options or a storage backend are misconfigured."""


class StorageAppError(AppError):
    """Raised when a storage backend call fails."""


class MalformedReplyAppError(StorageAppError):
    """Raised when a numeric value cannot be read from a backend reply."""


class AuthenticationAppError(AppError):
    """Raised when an operator request carries no valid API key."""

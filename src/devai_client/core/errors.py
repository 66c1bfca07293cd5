#%% Custom Exceptions
"""
Exception types for the DevAI client.

The transport raises ClassifiedError; the backend service either converts it
into a fallback value or re-wraps it as an OperationError for the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Failure classes produced by the error classifier."""
    TIMEOUT = "timeout"
    CLIENT_ERROR_4XX = "client_error_4xx"
    SERVER_ERROR_5XX = "server_error_5xx"
    NETWORK_ERROR = "network_error"
    PROTOCOL_ERROR = "protocol_error"


class ClientError(Exception):
    """Base exception class for all client errors."""
    pass


class ConfigurationError(ClientError, ValueError):
    """Raised when configuration is invalid or missing."""
    pass


class ClassifiedError(ClientError):
    """
    A transport failure with its retry classification attached.

    Attributes:
        kind: Failure class
        message: Human-readable message (from the error body when available)
        status_code: HTTP status, when a response was received
        body: Decoded error body, when one could be parsed
        retryable: Whether another attempt is permitted for this failure
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.body = body
        self.retryable = retryable

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value!r}, status_code={self.status_code!r}, "
            f"message={self.message!r}, retryable={self.retryable!r})"
        )


class BackendError(ClientError):
    """Raised when the backend answers 2xx but reports `success: false`."""

    def __init__(self, message: str, body: Any = None):
        super().__init__(message)
        self.message = message
        self.body = body


class OperationError(ClientError):
    """Raised by primary operations (chat, upload) to report a failure to the caller."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        self.message = f"{operation}: {cause}"
        super().__init__(self.message)

    @property
    def kind(self) -> Optional[ErrorKind]:
        """Classification of the underlying transport failure, if any."""
        return getattr(self.cause, "kind", None)

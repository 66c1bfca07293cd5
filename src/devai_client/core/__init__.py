"""
Core transport layer for the DevAI client.

Exports:
- TransportClient: retrying HTTP client with per-attempt timeouts
- RequestSpec: immutable description of one logical request
- RetryPolicy: attempt count and exponential backoff timing
- ClientSettings / load_settings: YAML + environment configuration
- Error types (ClassifiedError, ErrorKind, OperationError, ...)
"""

from .config import ClientSettings, load_settings
from .errors import (
    BackendError,
    ClassifiedError,
    ClientError,
    ConfigurationError,
    ErrorKind,
    OperationError,
)
from .retry import RetryPolicy
from .transport import (
    AttemptOutcome,
    FatalFailure,
    RequestSpec,
    RetryableFailure,
    Success,
    TransportClient,
)

__all__ = [
    "ClientSettings",
    "load_settings",
    "BackendError",
    "ClassifiedError",
    "ClientError",
    "ConfigurationError",
    "ErrorKind",
    "OperationError",
    "RetryPolicy",
    "AttemptOutcome",
    "FatalFailure",
    "RequestSpec",
    "RetryableFailure",
    "Success",
    "TransportClient",
]

"""
devai-client: resilient HTTP client for the DevAI backend.

A retrying transport with failure classification, typed backend operations
that degrade gracefully, and a connection monitor for backend reachability.
"""

__version__ = "0.1.0"

# Re-export core components for convenience
from .core import (
    ClassifiedError,
    ClientSettings,
    ErrorKind,
    OperationError,
    RequestSpec,
    RetryPolicy,
    TransportClient,
    load_settings,
)
from .core.models import ConnectionState, ConnectionStatus
from .services import BackendService, ConnectionMonitor, FailurePolicy

__all__ = [
    "ClassifiedError",
    "ClientSettings",
    "ErrorKind",
    "OperationError",
    "RequestSpec",
    "RetryPolicy",
    "TransportClient",
    "load_settings",
    "ConnectionState",
    "ConnectionStatus",
    "BackendService",
    "ConnectionMonitor",
    "FailurePolicy",
]

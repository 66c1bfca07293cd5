"""
Domain operations and connection tracking built on the transport layer.

Exports:
- BackendService: typed backend operations with per-operation failure policy
- FailurePolicy: FALLBACK / SENTINEL / PROPAGATE
- ConnectionMonitor: periodic health-check state machine
"""

from .backend import BackendService, FailurePolicy, generate_conversation_title, operation
from .monitor import ConnectionMonitor

__all__ = [
    "BackendService",
    "FailurePolicy",
    "generate_conversation_title",
    "operation",
    "ConnectionMonitor",
]

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    """A single chat turn sent to the backend."""
    role: str
    content: str


class HealthCheckResult(BaseModel):
    """Outcome of GET /health; `error` is set when the check failed."""
    is_healthy: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ServerInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str = "unknown"
    status: str = "error"
    uptime: float = 0


class ChatResult(BaseModel):
    """Response model for the chat endpoint."""
    success: bool
    content: str
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    provider: Optional[str] = None
    source: str = "backend"


class ProviderTestResult(BaseModel):
    available: bool = False
    latency: Optional[float] = None
    error: Optional[str] = None


class UploadResult(BaseModel):
    success: bool
    project: Optional[Dict[str, Any]] = None
    source: str = "backend"


class Conversation(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Any
    title: Optional[str] = None
    messages: List[Dict[str, Any]] = []
    metadata: Optional[Dict[str, Any]] = None


class ConnectionStatus(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectionState(BaseModel):
    """Snapshot of backend reachability; replaced, never mutated, on each transition."""
    model_config = ConfigDict(frozen=True)

    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_error: Optional[str] = None
    last_checked_at: Optional[datetime] = None

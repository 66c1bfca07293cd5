"""
Typed operations against the DevAI backend.

Every operation is a thin call through the TransportClient. What differs is
how a failure reaches the caller, and that is declared per operation with
`@operation(...)`:

- FALLBACK: best-effort reads feeding lists and badges; return a documented
  default (empty list/dict, None, False)
- SENTINEL: writes and commands; return None/False, logged but not raised
- PROPAGATE: the user's explicit intent (chat, upload, analysis); re-wrap as
  OperationError with the operation label and raise
"""

from __future__ import annotations

import functools
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar, Union

import aiofiles
from pydantic import BaseModel, ValidationError

from ..core.config import ClientSettings
from ..core.errors import BackendError, ClassifiedError, ClientError, ErrorKind, OperationError
from ..core.logging import ClientLogger
from ..core.models import (
    ChatMessage,
    ChatResult,
    Conversation,
    HealthCheckResult,
    ProviderTestResult,
    ServerInfo,
    UploadResult,
)
from ..core.transport import FilePart, RequestSpec, TransportClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# A path on disk, or (filename, content[, content type]) already in memory
UploadSource = Union[str, Path, Tuple[str, bytes], Tuple[str, bytes, Optional[str]]]

DEFAULT_TITLE = "New Conversation"
TITLE_MAX_CHARS = 50


class FailurePolicy(str, Enum):
    FALLBACK = "fallback"
    SENTINEL = "sentinel"
    PROPAGATE = "propagate"


def operation(
    policy: FailurePolicy,
    *,
    fallback: Any = None,
    label: Optional[str] = None,
) -> Callable:
    """
    Declare how a service operation reports failure.

    Args:
        policy: FailurePolicy for this operation
        fallback: Value (or zero-argument factory) returned for FALLBACK/SENTINEL
        label: Prefix of the propagated error message (PROPAGATE only)
    """
    if policy is FailurePolicy.PROPAGATE and not label:
        raise ValueError("PROPAGATE operations need a label")

    def decorator(func: Callable) -> Callable:
        name = func.__name__

        @functools.wraps(func)
        async def wrapper(self: "BackendService", *args: Any, **kwargs: Any) -> Any:
            try:
                return await func(self, *args, **kwargs)
            except ClientError as exc:
                await self._record_failure(name, exc)
                if policy is FailurePolicy.PROPAGATE:
                    logger.error("%s failed: %s", name, exc)
                    raise OperationError(label, exc) from exc
                logger.warning("%s failed, returning fallback: %s", name, exc)
                return fallback() if callable(fallback) else fallback

        wrapper.failure_policy = policy
        wrapper.fallback = fallback
        return wrapper

    return decorator


def generate_conversation_title(messages: Sequence[Union[ChatMessage, Dict[str, Any]]]) -> str:
    """Title from the first user message, truncated to 50 characters."""
    for message in messages or []:
        role, content = _message_parts(message)
        if role == "user":
            text = (content or "")[:TITLE_MAX_CHARS].strip()
            if len(text) < len(content or ""):
                return f"{text}..."
            return text or DEFAULT_TITLE
    return DEFAULT_TITLE


def _message_parts(message: Union[ChatMessage, Dict[str, Any]]) -> Tuple[Optional[str], str]:
    if isinstance(message, ChatMessage):
        return message.role, message.content
    if isinstance(message, dict):
        return message.get("role"), str(message.get("content") or "")
    return None, ""


def _dump_messages(messages: Sequence[Union[ChatMessage, Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [m.model_dump() if isinstance(m, BaseModel) else dict(m) for m in messages]


def _field(payload: Any, key: str, default: Any = None) -> Any:
    if isinstance(payload, dict):
        return payload.get(key, default)
    return default


def _status_ok(payload: Any) -> bool:
    return str(_field(payload, "status", "")).lower() == "ok"


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    """Validate a payload; a shape mismatch is a protocol error."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ClassifiedError(
            ErrorKind.PROTOCOL_ERROR,
            f"Unexpected {model.__name__} payload: {e.error_count()} validation error(s)",
            body=data,
        ) from e


def _require_success(payload: Any, default_message: str) -> Dict[str, Any]:
    if isinstance(payload, dict) and payload.get("success"):
        return payload
    raise BackendError(_field(payload, "error") or default_message, body=payload)


async def _read_upload(source: UploadSource) -> Tuple[str, bytes, Optional[str]]:
    if isinstance(source, tuple):
        if len(source) == 2:
            return source[0], source[1], None
        return source[0], source[1], source[2]
    path = Path(source)
    try:
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()
    except OSError as e:
        raise ClientError(f"Cannot read {path}: {e}") from e
    return path.name, content, None


class BackendService:
    """Domain operations over a TransportClient."""

    def __init__(self, transport: TransportClient, client_logger: Optional[ClientLogger] = None):
        self.transport = transport
        self.client_logger = client_logger or transport.client_logger

    @classmethod
    def from_settings(cls, settings: ClientSettings, **transport_kwargs: Any) -> "BackendService":
        return cls(TransportClient.from_settings(settings, **transport_kwargs))

    @classmethod
    def failure_policies(cls) -> Dict[str, FailurePolicy]:
        """Map of operation name to its declared FailurePolicy."""
        return {
            name: attr.failure_policy
            for name, attr in vars(cls).items()
            if hasattr(attr, "failure_policy")
        }

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "BackendService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _record_failure(self, operation_name: str, exc: BaseException) -> None:
        if self.client_logger is None:
            return
        await self.client_logger.log_error(
            operation_name,
            type(exc).__name__,
            str(exc),
            {
                "kind": getattr(getattr(exc, "kind", None), "value", None),
                "status_code": getattr(exc, "status_code", None),
            },
        )

    # ---------------- Health ----------------
    async def check_health(self) -> HealthCheckResult:
        """GET /health; never raises."""
        try:
            health = await self.transport.get("/health")
        except ClientError as exc:
            await self._record_failure("check_health", exc)
            return HealthCheckResult(is_healthy=False, error=str(exc))
        return HealthCheckResult(
            is_healthy=_status_ok(health),
            data=health if isinstance(health, dict) else None,
        )

    @operation(FailurePolicy.FALLBACK, fallback=False)
    async def is_backend_available(self) -> bool:
        return _status_ok(await self.transport.get("/health"))

    @operation(FailurePolicy.PROPAGATE, label="Ping failed")
    async def ping(self) -> float:
        """Round-trip latency of GET /ping in milliseconds."""
        start = time.perf_counter()
        await self.transport.get("/ping")
        return (time.perf_counter() - start) * 1000

    @operation(FailurePolicy.FALLBACK, fallback=ServerInfo)
    async def get_server_info(self) -> ServerInfo:
        return _parse(ServerInfo, await self.transport.get("/info"))

    # ---------------- AI ----------------
    @operation(FailurePolicy.PROPAGATE, label="Backend AI Error")
    async def send_chat_message(
        self,
        messages: Sequence[Union[ChatMessage, Dict[str, Any]]],
        *,
        provider: str = "gemini",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        timeout_ms: int = 30_000,
        request_timeout_ms: Optional[float] = None,
    ) -> ChatResult:
        """
        Send a chat completion request.

        `timeout_ms` is forwarded to the backend's provider call;
        `request_timeout_ms` overrides the transport's per-attempt timeout.
        """
        body = {
            "messages": _dump_messages(messages),
            "provider": provider,
            "model": model,
            "apiKey": api_key,
            "options": {
                "maxTokens": max_tokens,
                "temperature": temperature,
                "timeout": timeout_ms,
            },
        }
        response = _require_success(
            await self.transport.execute(
                RequestSpec("POST", "/api/ai/chat", json=body, timeout_ms=request_timeout_ms)
            ),
            "Unknown backend error",
        )
        return _parse(ChatResult, {
            "success": True,
            "content": response.get("content"),
            "model": response.get("model"),
            "usage": response.get("usage"),
            "provider": response.get("provider"),
        })

    @operation(FailurePolicy.FALLBACK, fallback=dict)
    async def get_api_status(self) -> Dict[str, Any]:
        response = await self.transport.get("/api/ai/providers/status")
        return _field(response, "providers") or {}

    async def test_provider_connection(self, provider: str) -> ProviderTestResult:
        """POST /api/ai/providers/test; never raises."""
        try:
            response = await self.transport.post("/api/ai/providers/test", {"provider": provider})
            return _parse(ProviderTestResult, {
                "available": bool(_field(response, "available", False)),
                "latency": _field(response, "latency"),
                "error": _field(response, "error"),
            })
        except ClientError as exc:
            await self._record_failure("test_provider_connection", exc)
            return ProviderTestResult(available=False, latency=None, error=str(exc))

    # ---------------- Files ----------------
    @operation(FailurePolicy.PROPAGATE, label="Upload Error")
    async def upload_files(
        self,
        files: Iterable[UploadSource],
        project_name: str,
        *,
        timeout_ms: Optional[float] = None,
    ) -> UploadResult:
        """Upload a project's files as multipart form data."""
        parts: List[FilePart] = [("files", await _read_upload(f)) for f in files]
        spec = RequestSpec(
            "POST",
            "/api/files/upload",
            data={
                "projectName": project_name,
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
            },
            files=parts,
            timeout_ms=timeout_ms,
        )
        response = _require_success(await self.transport.execute(spec), "Error uploading files")
        return _parse(UploadResult, {"success": True, "project": response.get("project")})

    @operation(FailurePolicy.PROPAGATE, label="Analysis Error")
    async def analyze_files(self, project_id: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.transport.post(f"/api/files/analyze/{project_id}", {"options": options or {}})
        return _field(response, "analysis") or {}

    # ---------------- Conversations ----------------
    @operation(FailurePolicy.SENTINEL, fallback=None)
    async def save_conversation(
        self,
        messages: Sequence[Union[ChatMessage, Dict[str, Any]]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Conversation]:
        metadata = metadata or {}
        response = _require_success(
            await self.transport.post("/api/conversations", {
                "messages": _dump_messages(messages),
                "title": metadata.get("title") or generate_conversation_title(messages),
                "metadata": metadata,
            }),
            "Error saving conversation",
        )
        return _parse(Conversation, response.get("conversation"))

    @operation(FailurePolicy.FALLBACK, fallback=list)
    async def get_conversations(
        self,
        *,
        page: int = 1,
        limit: int = 50,
        sort_by: str = "updatedAt",
        sort_order: str = "desc",
    ) -> List[Conversation]:
        response = await self.transport.get("/api/conversations", {
            "page": page,
            "limit": limit,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        })
        conversations: List[Conversation] = []
        for item in _field(response, "conversations") or []:
            try:
                conversations.append(Conversation.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping malformed conversation (%d validation error(s))", e.error_count())
        return conversations

    @operation(FailurePolicy.FALLBACK, fallback=None)
    async def get_conversation(self, conversation_id: Any) -> Optional[Conversation]:
        response = await self.transport.get(f"/api/conversations/{conversation_id}")
        conversation = _field(response, "conversation")
        return _parse(Conversation, conversation) if conversation else None

    @operation(FailurePolicy.SENTINEL, fallback=None)
    async def update_conversation(self, conversation_id: Any, updates: Dict[str, Any]) -> Optional[Conversation]:
        response = _require_success(
            await self.transport.put(f"/api/conversations/{conversation_id}", updates),
            "Error updating conversation",
        )
        return _parse(Conversation, response.get("conversation"))

    @operation(FailurePolicy.SENTINEL, fallback=False)
    async def delete_conversation(self, conversation_id: Any) -> bool:
        response = await self.transport.delete(f"/api/conversations/{conversation_id}")
        return bool(_field(response, "success", False))

    # ---------------- Settings ----------------
    @operation(FailurePolicy.FALLBACK, fallback=dict)
    async def get_user_settings(self) -> Dict[str, Any]:
        return _field(await self.transport.get("/api/settings"), "settings") or {}

    @operation(FailurePolicy.SENTINEL, fallback=False)
    async def save_user_settings(self, settings: Dict[str, Any]) -> bool:
        response = await self.transport.post("/api/settings", {"settings": settings})
        return bool(_field(response, "success", False))

    # ---------------- Metrics ----------------
    @operation(FailurePolicy.SENTINEL, fallback=False)
    async def send_metrics(self, metrics: Dict[str, Any]) -> bool:
        """Fire-and-forget telemetry."""
        await self.transport.post("/api/metrics", {"metrics": metrics})
        return True

    @operation(FailurePolicy.FALLBACK, fallback=dict)
    async def get_user_stats(self) -> Dict[str, Any]:
        return _field(await self.transport.get("/api/stats"), "stats") or {}

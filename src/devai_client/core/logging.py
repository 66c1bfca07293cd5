"""
Diagnostics logging for the DevAI client.

Writes request attempts, swallowed errors and connection events as JSONL
records under `{base_log_dir}/devai-client/`:

    requests_YYYY-MM-DD.jsonl
    errors_YYYY-MM-DD.jsonl
    events_YYYY-MM-DD.jsonl
"""

import json
import asyncio
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
import aiofiles
import logging


class ClientLogger:
    """
    JSONL logger for transport and service diagnostics.

    A failed write falls back to standard logging and never raises, so
    diagnostics cannot turn a degraded result into an exception.
    """

    def __init__(self, base_log_dir: Path):
        self.base_log_dir = Path(base_log_dir)
        self.log_dir = self.base_log_dir / "devai-client"
        self._write_lock = asyncio.Lock()

    def _log_file(self, stream: str) -> Path:
        today = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"{stream}_{today}.jsonl"

    async def _append(self, stream: str, log_entry: Dict[str, Any]) -> None:
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_file = self._log_file(stream)
            async with self._write_lock:
                async with aiofiles.open(log_file, 'a', encoding='utf-8') as f:
                    await f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + '\n')
        except Exception as e:
            logging.error(f"Failed to write {stream} log: {e}")

    async def log_attempt(
        self,
        method: str,
        path: str,
        attempt: int,
        outcome: str,
        *,
        status_code: Optional[int] = None,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
        elapsed_ms: Optional[float] = None,
    ) -> None:
        """
        Log a single request attempt.

        Args:
            method: HTTP method
            path: Request path relative to the base URL
            attempt: Zero-based attempt index
            outcome: "success", "retryable" or "fatal"
            status_code: HTTP status when a response was received
            error_kind: ErrorKind value for failures
            error_message: Failure message
            elapsed_ms: Wall time of the attempt
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "method": method,
            "path": path,
            "attempt": attempt,
            "outcome": outcome,
        }
        if status_code is not None:
            log_entry["status_code"] = status_code
        if error_kind:
            log_entry["error_kind"] = error_kind
        if error_message:
            log_entry["error_message"] = error_message
        if elapsed_ms is not None:
            log_entry["elapsed_ms"] = round(elapsed_ms, 1)
        await self._append("requests", log_entry)

    async def log_error(
        self,
        operation: str,
        error_type: str,
        error_message: str,
        error_details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an error that a service operation handled.

        Args:
            operation: Service operation name (e.g., "get_conversations")
            error_type: Type of error (e.g., "ClassifiedError")
            error_message: Human-readable error message
            error_details: Additional error context
        """
        await self._append("errors", {
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            "error_type": error_type,
            "error_message": error_message,
            "error_details": error_details or {}
        })

    async def log_event(
        self,
        event_type: str,
        event_data: Dict[str, Any],
        level: str = "INFO"
    ) -> None:
        """Log a client event (e.g., a connection state change)."""
        await self._append("events", {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event_type": event_type,
            "event_data": event_data
        })


# Global logger instances, one per base directory
_client_loggers: Dict[Path, ClientLogger] = {}


def get_client_logger(base_log_dir: Optional[Path]) -> Optional[ClientLogger]:
    """Get or create the diagnostics logger for a directory; None disables diagnostics."""
    if base_log_dir is None:
        return None
    key = Path(base_log_dir).expanduser().resolve()
    if key not in _client_loggers:
        _client_loggers[key] = ClientLogger(key)
    return _client_loggers[key]

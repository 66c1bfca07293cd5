"""
Failure classification for the transport client.

Maps a raw failure (an exception raised while talking to the backend, or a
non-2xx response) to a ClassifiedError whose `retryable` flag drives the
retry loop. Rules, in priority order:

1. client-side timeout              -> TIMEOUT (not retried)
2. HTTP 400/401/403/404             -> CLIENT_ERROR_4XX (not retried)
3. HTTP >= 500                      -> SERVER_ERROR_5XX (retried)
4. connection failure (DNS, refused, reset) -> NETWORK_ERROR (retried)
5. anything else                    -> PROTOCOL_ERROR (not retried)

Other 4xx statuses (408, 409, 429, ...) stay CLIENT_ERROR_4XX but are retried.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx

from .errors import ClassifiedError, ErrorKind

FATAL_CLIENT_STATUSES = frozenset({400, 401, 403, 404})


def parse_error_body(content: bytes) -> Any:
    """Best-effort decode of an error body; returns None when it is not JSON."""
    if not content:
        return None
    try:
        return json.loads(content)
    except (ValueError, UnicodeDecodeError):
        return None


def error_message(status_code: int, body: Any, reason: str = "") -> str:
    """Pick the human-readable message for a failed response."""
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    reason = reason or "Error"
    return f"HTTP {status_code}: {reason}"


def classify_status(status_code: int, body: Any = None, reason: str = "") -> ClassifiedError:
    """Classify a non-success HTTP status."""
    message = error_message(status_code, body, reason)
    if status_code in FATAL_CLIENT_STATUSES:
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR_4XX, message, status_code=status_code, body=body, retryable=False
        )
    if status_code >= 500:
        return ClassifiedError(
            ErrorKind.SERVER_ERROR_5XX, message, status_code=status_code, body=body, retryable=True
        )
    if 400 <= status_code < 500:
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR_4XX, message, status_code=status_code, body=body, retryable=True
        )
    return ClassifiedError(
        ErrorKind.PROTOCOL_ERROR, message, status_code=status_code, body=body, retryable=False
    )


def classify_response(response: httpx.Response) -> ClassifiedError:
    """Classify a non-2xx response, tolerating a missing or malformed body."""
    body = parse_error_body(response.content)
    return classify_status(response.status_code, body, response.reason_phrase)


def classify_exception(exc: BaseException, timeout_ms: Optional[float] = None) -> ClassifiedError:
    """Classify an exception raised while issuing a request."""
    if isinstance(exc, ClassifiedError):
        return exc
    # TimeoutError subclasses OSError, so check it before the network family
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        suffix = f" after {timeout_ms:.0f}ms" if timeout_ms is not None else ""
        return ClassifiedError(ErrorKind.TIMEOUT, f"Request timed out{suffix}", retryable=False)
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError, OSError)):
        detail = str(exc) or type(exc).__name__
        return ClassifiedError(ErrorKind.NETWORK_ERROR, f"Network error: {detail}", retryable=True)
    detail = str(exc) or type(exc).__name__
    return ClassifiedError(ErrorKind.PROTOCOL_ERROR, detail, retryable=False)


def decode_error(exc: BaseException, status_code: Optional[int] = None) -> ClassifiedError:
    """A 2xx body that could not be decoded; never retried."""
    return ClassifiedError(
        ErrorKind.PROTOCOL_ERROR,
        f"Invalid response payload: {exc}",
        status_code=status_code,
        retryable=False,
    )

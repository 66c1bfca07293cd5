"""
HTTP transport for the DevAI backend.

Owns the base URL, default headers, per-attempt timeout and retry policy.
One call to `execute()` is one logical request: attempts run strictly in
sequence, each bound to its own timeout, with exponential backoff between
retryable failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .classifier import classify_exception, classify_response, decode_error
from .config import ClientSettings
from .errors import ClassifiedError
from .logging import ClientLogger, get_client_logger
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

# Multipart part: (field name, (filename, content, content type))
FilePart = Tuple[str, Tuple[str, bytes, Optional[str]]]


@dataclass(frozen=True)
class RequestSpec:
    """
    One logical request against the backend.

    Attributes:
        method: HTTP method
        path: Path relative to the base URL (e.g., "/api/conversations")
        params: Query string parameters
        json: JSON body
        data: Form fields (multipart requests)
        files: Multipart file parts; their presence drops the JSON content type
        headers: Per-request headers, applied over the client defaults
        timeout_ms: Per-attempt timeout override
    """
    method: str
    path: str
    params: Optional[Mapping[str, Any]] = None
    json: Any = None
    data: Optional[Mapping[str, Any]] = None
    files: Optional[Sequence[FilePart]] = None
    headers: Optional[Mapping[str, str]] = None
    timeout_ms: Optional[float] = None

    @property
    def is_multipart(self) -> bool:
        return self.files is not None


@dataclass(frozen=True)
class Success:
    payload: Any


@dataclass(frozen=True)
class RetryableFailure:
    error: ClassifiedError


@dataclass(frozen=True)
class FatalFailure:
    error: ClassifiedError


AttemptOutcome = Union[Success, RetryableFailure, FatalFailure]

SleepFn = Callable[[float], Awaitable[Any]]


class TransportClient:
    """
    Retrying JSON-over-HTTP client.

    Responsibilities:
      - Bind every attempt to a fresh timeout (timeout -> TIMEOUT, not retried)
      - Classify failures and retry only the retryable ones
      - Back off exponentially between attempts
      - Decode 2xx payloads; an undecodable 2xx body is fatal
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_ms: float = 30_000,
        retry_policy: Optional[RetryPolicy] = None,
        headers: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
        client_logger: Optional[ClientLogger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = float(timeout_ms)
        self.retry_policy = retry_policy or RetryPolicy()
        self.headers = httpx.Headers(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)
        self.client_logger = client_logger
        self._sleep = sleep

        # The per-attempt timer is the only timeout authority for owned clients
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            transport=transport,
            timeout=None,
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs: Any) -> "TransportClient":
        """Build a client from loaded settings; keyword arguments win."""
        kwargs.setdefault("timeout_ms", settings.timeout_ms)
        kwargs.setdefault("retry_policy", settings.retry_policy())
        kwargs.setdefault("headers", settings.headers)
        kwargs.setdefault("client_logger", get_client_logger(settings.log_dir))
        return cls(settings.base_url, **kwargs)

    # ---------------- Lifecycle ----------------
    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---------------- Internal helpers ----------------
    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _headers_for(self, spec: RequestSpec) -> httpx.Headers:
        headers = httpx.Headers(self.headers)
        if spec.is_multipart:
            # Let httpx write the multipart boundary
            headers.pop("Content-Type", None)
        if spec.headers:
            headers.update(spec.headers)
        return headers

    async def _send(self, spec: RequestSpec) -> httpx.Response:
        return await self._http.request(
            spec.method,
            self.url_for(spec.path),
            params=spec.params,
            json=spec.json,
            data=spec.data,
            files=spec.files,
            headers=self._headers_for(spec),
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    async def _attempt(self, spec: RequestSpec, attempt: int) -> AttemptOutcome:
        timeout_ms = spec.timeout_ms if spec.timeout_ms is not None else self.timeout_ms
        status_code: Optional[int] = None
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(self._send(spec), timeout=timeout_ms / 1000.0)
        except (asyncio.TimeoutError, httpx.HTTPError, OSError) as exc:
            error = classify_exception(exc, timeout_ms)
            outcome: AttemptOutcome = RetryableFailure(error) if error.retryable else FatalFailure(error)
        else:
            status_code = response.status_code
            if response.is_success:
                try:
                    outcome = Success(self._decode(response))
                except ValueError as exc:
                    outcome = FatalFailure(decode_error(exc, status_code))
            else:
                error = classify_response(response)
                outcome = RetryableFailure(error) if error.retryable else FatalFailure(error)

        await self._record(spec, attempt, outcome, status_code, (time.monotonic() - started) * 1000)
        return outcome

    async def _record(
        self,
        spec: RequestSpec,
        attempt: int,
        outcome: AttemptOutcome,
        status_code: Optional[int],
        elapsed_ms: float,
    ) -> None:
        if isinstance(outcome, Success):
            label, error = "success", None
            logger.debug("API response: %s %s (%s) in %.0fms", spec.method, spec.path, status_code, elapsed_ms)
        else:
            label = "retryable" if isinstance(outcome, RetryableFailure) else "fatal"
            error = outcome.error
            logger.warning(
                "API error: %s %s attempt %d (%s): %s",
                spec.method, spec.path, attempt + 1, error.kind.value, error.message,
            )
        if self.client_logger is not None:
            await self.client_logger.log_attempt(
                spec.method,
                spec.path,
                attempt,
                label,
                status_code=status_code,
                error_kind=error.kind.value if error else None,
                error_message=error.message if error else None,
                elapsed_ms=elapsed_ms,
            )

    # ---------------- Public API ----------------
    async def execute(self, spec: RequestSpec) -> Any:
        """
        Run one logical request and return the decoded payload.

        Raises:
            ClassifiedError: the fatal failure, or the last retryable failure
                once all attempts are used
        """
        policy = self.retry_policy
        logger.debug("API request: %s %s", spec.method, self.url_for(spec.path))

        last_error: Optional[ClassifiedError] = None
        for attempt in range(policy.max_attempts):
            outcome = await self._attempt(spec, attempt)
            if isinstance(outcome, Success):
                return outcome.payload

            last_error = outcome.error
            if isinstance(outcome, FatalFailure) or policy.is_last_attempt(attempt):
                break

            delay = policy.delay_seconds(attempt)
            logger.info(
                "Retrying %s %s in %.0fms (attempt %d of %d)",
                spec.method, spec.path, delay * 1000, attempt + 2, policy.max_attempts,
            )
            await self._sleep(delay)

        raise last_error

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.execute(RequestSpec("GET", path, params=params, **kwargs))

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.execute(RequestSpec("POST", path, json={} if json is None else json, **kwargs))

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.execute(RequestSpec("PUT", path, json={} if json is None else json, **kwargs))

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.execute(RequestSpec("DELETE", path, **kwargs))

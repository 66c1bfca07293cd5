#%% Connection Monitor
"""
Backend connectivity tracking.

The ConnectionMonitor runs the health check on start, every `interval_s`
seconds after that, and whenever `reconnect()` is called. Its
ConnectionState is replaced on every transition and handed to subscribers:

    UNKNOWN -> CHECKING -> CONNECTED | DISCONNECTED -> CHECKING -> ...

Overlapping checks (a reconnect while a periodic check is in flight) are not
de-duplicated; the last check to complete wins.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..core.logging import ClientLogger
from ..core.models import ConnectionState, ConnectionStatus, HealthCheckResult
from .backend import BackendService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 30.0

Listener = Callable[[ConnectionState], None]


class ConnectionMonitor:
    """
    Periodic health checker owning the shared ConnectionState.

    Use as an async context manager so the timer task is always released:

        async with ConnectionMonitor(service) as monitor:
            ...
            await monitor.reconnect()
    """

    def __init__(
        self,
        service: BackendService,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        client_logger: Optional[ClientLogger] = None,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.service = service
        self.interval_s = interval_s
        self.client_logger = client_logger or service.client_logger
        self._state = ConnectionState()
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None

    # ---------------- State ----------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_connected(self) -> bool:
        return self._state.status is ConnectionStatus.CONNECTED

    @property
    def is_checking(self) -> bool:
        return self._state.status in (ConnectionStatus.UNKNOWN, ConnectionStatus.CHECKING)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def status_text(self) -> str:
        if self.is_checking:
            return "Connecting..."
        if self.is_connected:
            return "Connected"
        if self._state.last_error:
            return f"Error: {self._state.last_error}"
        return "Disconnected"

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Connection state listener failed")
        if previous.status is not state.status:
            logger.info("Backend connection: %s -> %s", previous.status.value, state.status.value)

    # ---------------- Checks ----------------
    async def check(self) -> ConnectionState:
        """Run one check cycle and return the resulting state."""
        # start() already announced CHECKING for the first cycle
        if self._state.status is not ConnectionStatus.CHECKING:
            self._set_state(ConnectionState(
                status=ConnectionStatus.CHECKING,
                last_error=self._state.last_error,
                last_checked_at=self._state.last_checked_at,
            ))

        result: HealthCheckResult = await self.service.check_health()
        now = datetime.now(timezone.utc)
        if result.is_healthy:
            state = ConnectionState(status=ConnectionStatus.CONNECTED, last_checked_at=now)
        else:
            error = result.error or f"Unhealthy backend status: {(result.data or {}).get('status')!r}"
            state = ConnectionState(status=ConnectionStatus.DISCONNECTED, last_error=error, last_checked_at=now)
            logger.warning("Backend unavailable: %s", error)

        self._set_state(state)
        if self.client_logger is not None:
            await self.client_logger.log_event(
                "connection_state",
                {"status": state.status.value, "last_error": state.last_error},
                level="INFO" if result.is_healthy else "WARNING",
            )
        return state

    async def reconnect(self) -> ConnectionState:
        """Check immediately, independent of the periodic timer."""
        return await self.check()

    # ---------------- Lifecycle ----------------
    async def start(self) -> None:
        """Start periodic checking; the first check runs right away."""
        if self.is_running:
            return
        self._set_state(ConnectionState(status=ConnectionStatus.CHECKING))
        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self) -> None:
        """Cancel the periodic timer; no transitions happen afterwards."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.check()
            except Exception:
                # Keep the timer alive; the next cycle retries
                logger.exception("Connection check failed unexpectedly")
            await asyncio.sleep(self.interval_s)

    async def __aenter__(self) -> "ConnectionMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

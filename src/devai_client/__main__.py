"""CLI entry point for the DevAI client."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .core.config import ClientSettings, load_settings
from .core.errors import ConfigurationError, OperationError
from .core.models import ConnectionState, ConnectionStatus
from .services import BackendService, ConnectionMonitor

T = TypeVar("T")

app = typer.Typer(
    name="devai-client",
    help="Resilient client for the DevAI backend"
)

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to YAML config file")]
BaseUrlOption = Annotated[Optional[str], typer.Option("--base-url", help="Backend URL (overrides config)")]
LogLevelOption = Annotated[str, typer.Option("--log-level", help="Log level")]


def _setup(config: Optional[Path], base_url: Optional[str], log_level: str) -> ClientSettings:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    try:
        return load_settings(config, base_url=base_url)
    except ConfigurationError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(1)


def _build_service(settings: ClientSettings) -> BackendService:
    return BackendService.from_settings(settings)


def _run(settings: ClientSettings, func: Callable[[BackendService], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with _build_service(settings) as service:
            return await func(service)
    return asyncio.run(runner())


@app.command()
def health(
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = "WARNING",
):
    """Check backend health (exit code 1 when unhealthy)."""
    settings = _setup(config, base_url, log_level)
    result = _run(settings, lambda service: service.check_health())
    if result.is_healthy:
        typer.echo(f"✅ Backend healthy at {settings.base_url}")
        return
    reason = result.error or f"status={(result.data or {}).get('status')!r}"
    typer.echo(f"❌ Backend unhealthy at {settings.base_url}: {reason}", err=True)
    raise typer.Exit(1)


@app.command()
def ping(
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = "WARNING",
):
    """Measure round-trip latency to the backend."""
    settings = _setup(config, base_url, log_level)
    try:
        latency = _run(settings, lambda service: service.ping())
    except OperationError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Pong from {settings.base_url} in {latency:.0f}ms")


@app.command()
def info(
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = "WARNING",
):
    """Show server metadata."""
    settings = _setup(config, base_url, log_level)
    server = _run(settings, lambda service: service.get_server_info())
    typer.echo(f"Version: {server.version}")
    typer.echo(f"Status: {server.status}")
    typer.echo(f"Uptime: {server.uptime:.0f}s")


@app.command()
def providers(
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = "WARNING",
):
    """List AI provider availability as reported by the backend."""
    settings = _setup(config, base_url, log_level)
    status = _run(settings, lambda service: service.get_api_status())
    if not status:
        typer.echo("No provider status available")
        return
    for name, detail in sorted(status.items()):
        available = detail.get("available") if isinstance(detail, dict) else bool(detail)
        typer.echo(f"{'🟢' if available else '🔴'} {name}")


@app.command()
def watch(
    interval: Annotated[Optional[float], typer.Option("--interval", "-i", help="Seconds between checks")] = None,
    count: Annotated[Optional[int], typer.Option("--count", "-n", help="Stop after N completed checks")] = None,
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = "WARNING",
):
    """Monitor backend connectivity and print each check result."""
    settings = _setup(config, base_url, log_level)
    interval_s = interval or settings.monitor_interval_s

    async def watch_loop(service: BackendService) -> ConnectionState:
        done = asyncio.Event()
        completed = 0

        def on_state(state: ConnectionState) -> None:
            nonlocal completed
            if state.status is ConnectionStatus.CHECKING:
                return
            completed += 1
            stamp = state.last_checked_at.strftime("%H:%M:%S") if state.last_checked_at else "--:--:--"
            if state.status is ConnectionStatus.CONNECTED:
                typer.echo(f"[{stamp}] 🟢 Connected")
            else:
                typer.echo(f"[{stamp}] 🔴 Disconnected: {state.last_error}")
            if count and completed >= count:
                done.set()

        monitor = ConnectionMonitor(service, interval_s=interval_s)
        monitor.subscribe(on_state)
        async with monitor:
            await done.wait()
        return monitor.state

    typer.echo(f"Watching {settings.base_url} every {interval_s:g}s (Ctrl+C to stop)")
    try:
        state = _run(settings, watch_loop)
    except KeyboardInterrupt:
        typer.echo("\nStopped")
        return
    if state.status is not ConnectionStatus.CONNECTED:
        raise typer.Exit(1)


@app.command()
def validate_config(
    config: ConfigOption = None,
    base_url: BaseUrlOption = None,
):
    """Validate configuration without contacting the backend."""
    try:
        settings = load_settings(config, base_url=base_url)
        policy = settings.retry_policy()
        typer.echo("✅ Configuration is valid")
        typer.echo(f"Backend URL: {settings.base_url}")
        typer.echo(f"Timeout: {settings.timeout_ms}ms")
        typer.echo(
            f"Retry: {policy.max_attempts} attempt(s), {policy.base_delay_ms}ms base delay, "
            f"x{policy.backoff_multiplier:g} backoff"
        )
        typer.echo(f"Monitor interval: {settings.monitor_interval_s:g}s")
        if settings.log_dir:
            typer.echo(f"Diagnostics directory: {settings.log_dir}")
    except ConfigurationError as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()

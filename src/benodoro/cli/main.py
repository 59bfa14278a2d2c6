"""CLI commands for benodoro using Typer."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp
import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from benodoro import __version__
from benodoro.core.config import Config, get_config
from benodoro.core.orchestrator import Orchestrator, create_manager
from benodoro.session.manager import SessionManager
from benodoro.session.state import SessionState
from benodoro.widget.provider import WidgetProvider

T = TypeVar("T")

app = typer.Typer(
    name="benodoro",
    help="Pomodoro timer synchronized across devices.",
    add_completion=False,
)

console = Console()


def setup_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Reduce noise from external libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)


async def _with_manager(config: Config, action: Callable[[SessionManager], Awaitable[T]]) -> T:
    """Run ``action`` against a manager restored from the local mirror."""
    manager = create_manager(config)
    defaults = manager.local_mirror.defaults
    await defaults.open()
    try:
        await manager.restore()
        result = await action(manager)
        await manager.drain()
        return result
    finally:
        await manager.companion.close()
        if manager.cloud:
            await manager.cloud.close()
        await defaults.close()


async def _post_to_app(config: Config, path: str, payload: dict[str, Any] | None = None) -> dict | None:
    """Send a control request to the running app process, if it serves one."""
    if not config.web.enabled or Orchestrator.get_running_pid(config) is None:
        return None

    url = f"http://{config.web.host}:{config.web.port}/api{path}"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=5)) as session:
            async with session.post(url, json=payload or {}) as resp:
                if resp.status != 200:
                    return None
                return await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError):
        return None


def _start_session(is_break: bool, minutes: float) -> None:
    config = get_config()
    if minutes <= 0:
        console.print("[red]Duration must be positive[/red]")
        raise typer.Exit(1)

    duration = timedelta(minutes=minutes)

    async def run() -> SessionState:
        forwarded = await _post_to_app(
            config,
            "/session/start",
            {"isBreak": is_break, "durationSeconds": duration.total_seconds()},
        )
        if forwarded is not None:
            return await _with_manager(config, _current)
        return await _with_manager(
            config, lambda manager: manager.start(is_break=is_break, duration=duration)
        )

    state = asyncio.run(run())
    kind = "Break" if is_break else "Focus"
    color = "green" if is_break else "blue"
    console.print(f"[{color}]{kind} session started: {state.remaining_display()} remaining[/{color}]")


async def _current(manager: SessionManager) -> SessionState:
    return manager.state


@app.command()
def run(
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
    log_file: bool = typer.Option(False, "--log-file", help="Also write logs to the log directory"),
) -> None:
    """Run the app process in the foreground (Ctrl+C to quit)."""
    config = get_config()

    pid = Orchestrator.get_running_pid(config)
    if pid is not None:
        console.print(f"[yellow]App already running (PID: {pid})[/yellow]")
        raise typer.Exit(1)

    setup_logging(log_level or config.log_level, config.log_dir / "app.log" if log_file else None)

    console.print("[green]Starting benodoro...[/green]")
    console.print("Press Ctrl+C to quit\n")

    try:
        asyncio.run(Orchestrator(config).serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@app.command()
def focus(
    minutes: float = typer.Option(None, "--minutes", "-m", help="Session length in minutes"),
) -> None:
    """Start a focus session (25 minutes by default)."""
    config = get_config()
    _start_session(False, minutes if minutes is not None else config.session.focus_minutes)


@app.command(name="break")
def start_break(
    minutes: float = typer.Option(None, "--minutes", "-m", help="Break length in minutes"),
) -> None:
    """Start a break (5 minutes by default)."""
    config = get_config()
    _start_session(True, minutes if minutes is not None else config.session.break_minutes)


@app.command()
def stop() -> None:
    """Stop and reset the current session."""
    config = get_config()

    async def run_stop() -> None:
        if await _post_to_app(config, "/session/stop") is None:
            await _with_manager(config, lambda manager: manager.stop())

    asyncio.run(run_stop())
    console.print("[yellow]Session stopped[/yellow]")


@app.command()
def status() -> None:
    """Show the current session."""
    config = get_config()
    state = asyncio.run(_with_manager(config, _current))
    pid = Orchestrator.get_running_pid(config)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    if state.is_active:
        kind = "[green]Break[/green]" if state.is_break else "[blue]Focus[/blue]"
        table.add_row("Session", kind)
        table.add_row("Remaining", state.remaining_display())
        table.add_row("Ends", state.end_time.astimezone().strftime("%H:%M:%S"))
    else:
        table.add_row("Session", "[dim]Idle[/dim]")
        table.add_row("Remaining", "00:00")

    table.add_row("App", f"[green]running (PID {pid})[/green]" if pid else "[dim]not running[/dim]")
    table.add_row("Cloud", config.cloud.provider)
    table.add_row("Companion", config.companion.peer_url if config.companion.enabled else "disabled")

    console.print(Panel(table, title="benodoro", border_style="green" if state.is_active else "blue"))


@app.command()
def pull() -> None:
    """Fetch the session record from the cloud once."""
    config = get_config()

    async def fetch(manager: SessionManager):
        result = await manager.load_from_cloud()
        return result, manager.state

    result, state = asyncio.run(_with_manager(config, fetch))
    console.print(f"Cloud fetch: [bold]{result.status.value}[/bold]")
    console.print(f"Remaining: {state.remaining_display()}")


@app.command()
def watch() -> None:
    """Show a live MM:SS countdown read from the local mirror."""
    config = get_config()

    async def live() -> None:
        manager = create_manager(config)
        defaults = manager.local_mirror.defaults
        await defaults.open()
        try:
            with Live(console=console, refresh_per_second=4) as display:
                while True:
                    state = await manager.local_mirror.read()
                    style = "green" if state.is_break else "blue"
                    label = "Break" if state.is_break else "Focus"
                    if not state.is_active:
                        label = "Idle"
                    display.update(Text(f"{label}  {state.remaining_display()}", style=f"bold {style}"))
                    await asyncio.sleep(1)
        finally:
            await defaults.close()

    try:
        asyncio.run(live())
    except KeyboardInterrupt:
        pass


@app.command()
def widget(
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Fetch from the cloud first"),
) -> None:
    """Print the widget timeline for the current session."""
    config = get_config()
    interval = timedelta(seconds=config.widget.entry_interval_seconds)

    async def build(manager: SessionManager):
        provider = WidgetProvider(manager, interval=interval, refresh_from_cloud=refresh)
        return await provider.timeline()

    timeline = asyncio.run(_with_manager(config, build))

    table = Table(title="Widget Timeline", show_header=True, header_style="bold cyan")
    table.add_column("At")
    table.add_column("Label")
    table.add_column("Countdown")

    for entry in timeline.entries:
        table.add_row(
            entry.date.astimezone().strftime("%H:%M:%S"),
            entry.label,
            entry.countdown(),
        )

    console.print(table)
    console.print(
        f"Refresh: {timeline.policy.kind.value} at "
        f"{timeline.policy.reload_at.astimezone().strftime('%H:%M:%S')}"
    )


@app.command()
def config_show() -> None:
    """Show current configuration."""
    config = get_config()

    table = Table(title="benodoro Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("[bold]Paths[/bold]", "")
    table.add_row("  Data Directory", str(config.data_dir))
    table.add_row("  Log Directory", str(config.log_dir))
    table.add_row("  Config File", str(config.config_file))

    table.add_row("[bold]Session[/bold]", "")
    table.add_row("  Focus", f"{config.session.focus_minutes:g} min")
    table.add_row("  Break", f"{config.session.break_minutes:g} min")

    table.add_row("[bold]Local Mirror[/bold]", "")
    table.add_row("  Backend", config.local_mirror.backend)
    table.add_row("  Suite", config.local_mirror.suite_name)

    table.add_row("[bold]Cloud[/bold]", "")
    table.add_row("  Provider", config.cloud.provider)
    table.add_row("  API URL", config.cloud.api_url)
    table.add_row("  Container", config.cloud.container_id)
    table.add_row("  Poll Interval", f"{config.cloud.poll_interval_seconds:g}s")
    table.add_row("  Conflict Policy", config.cloud.conflict_policy)

    table.add_row("[bold]Companion[/bold]", "")
    table.add_row("  Enabled", str(config.companion.enabled))
    table.add_row("  Peer", config.companion.peer_url)

    table.add_row("[bold]Control Surface[/bold]", "")
    table.add_row("  Enabled", str(config.web.enabled))
    table.add_row("  URL", f"http://{config.web.host}:{config.web.port}")

    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"benodoro v{__version__}")


if __name__ == "__main__":
    app()

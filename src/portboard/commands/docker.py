"""Docker commands - containers that publish ports."""

import asyncio
import json

import typer
from rich.markup import escape
from rich.table import Table

from ..docker import DEFAULT_LOG_LINES
from ..models import LogEntry
from ..validation import MAX_LOG_LINES, validate_container_name
from .common import console, get_app_context, info, run, success

FOLLOW_INTERVAL = 2.0

LEVEL_STYLES = {"error": "red", "warn": "yellow", "info": ""}

docker_app = typer.Typer(help="Inspect and stop Docker containers", no_args_is_help=True)


@docker_app.command("ls")
def docker_ls(
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List containers that publish a host port.

    Examples:
        portboard docker ls
        portboard docker ls --json
    """
    ctx = get_app_context()
    ports = [port for port in run(ctx.service.list_ports()) if port.docker_container]

    if as_json:
        print(json.dumps([port.to_dict() for port in ports], indent=2))
        return

    if not ports:
        console.print("[yellow]No Docker containers publishing ports[/yellow]")
        return

    table = Table(title="Docker Containers")
    table.add_column("Host Port", style="yellow", justify="right")
    table.add_column("Container", style="blue")
    table.add_column("Image", style="cyan")
    table.add_column("Container Port", justify="right")
    table.add_column("Compose Project")

    for port in ports:
        container = port.docker_container
        table.add_row(
            str(port.port),
            container.name,
            container.image,
            str(container.container_port) if container.container_port else "-",
            container.compose_working_dir or container.compose_config_files or "-",
        )

    console.print(table)


@docker_app.command("stop")
def docker_stop(
    container: str = typer.Argument(..., help="Container name or ID"),
    compose: bool = typer.Option(
        False, "--compose", help="Bring down the container's whole Compose project"
    ),
) -> None:
    """Stop a container, or its Compose project with --compose.

    Examples:
        portboard docker stop my-postgres
        portboard docker stop web-1 --compose
    """
    ctx = get_app_context()

    async def stop():
        return await ctx.service.stop_docker(validate_container_name(container), compose)

    success(run(stop()))


def _print_entries(entries: list[LogEntry]) -> None:
    for entry in entries:
        style = LEVEL_STYLES.get(entry.level, "")
        stamp = f"[dim]{entry.timestamp}[/dim] " if entry.timestamp else ""
        text = escape(entry.message)
        message = f"[{style}]{text}[/{style}]" if style else text
        console.print(f"{stamp}{message}", highlight=False)


def _seconds(timestamp: str) -> str:
    """Truncate a Docker RFC3339Nano timestamp to whole seconds."""
    return timestamp[:19] + "Z"


@docker_app.command("logs")
def docker_logs(
    container: str = typer.Argument(..., help="Container name or ID"),
    lines: int = typer.Option(DEFAULT_LOG_LINES, "-n", "--lines", help="Number of lines"),
    since: str | None = typer.Option(
        None, "--since", help="Only lines after this RFC3339 timestamp"
    ),
    follow: bool = typer.Option(False, "-f", "--follow", help="Keep polling for new lines"),
) -> None:
    """Show recent log lines of a container.

    Examples:
        portboard docker logs my-postgres
        portboard docker logs web-1 -n 100
        portboard docker logs web-1 --since 2025-01-09T12:00:00Z
        portboard docker logs web-1 --follow
    """
    ctx = get_app_context()

    async def tail() -> None:
        entries = await ctx.docker.get_logs(container, lines=lines, since=since)
        _print_entries(entries)
        if not follow:
            if not entries:
                info("[dim]No log lines[/dim]")
            return

        last = next((e.timestamp for e in reversed(entries) if e.timestamp), None)
        while True:
            await asyncio.sleep(FOLLOW_INTERVAL)
            window = _seconds(last) if last else since
            entries = await ctx.docker.get_logs(container, lines=MAX_LOG_LINES, since=window)
            fresh = [e for e in entries if last is None or (e.timestamp or "") > last]
            _print_entries(fresh)
            last = next((e.timestamp for e in reversed(fresh) if e.timestamp), last)

    try:
        run(tail())
    except KeyboardInterrupt:
        pass

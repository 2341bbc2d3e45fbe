"""Info command - details of one port."""

import json

import typer

from ..validation import validate_port
from .common import (
    console,
    error,
    format_cpu,
    format_memory,
    format_uptime,
    get_app_context,
    run,
)


def info(
    port: str = typer.Argument(..., help="Port number"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show everything known about the process listening on a port.

    Examples:
        portboard info 3000
        portboard info 5432 --json
    """
    ctx = get_app_context()

    async def lookup():
        return await ctx.service.find_port(validate_port(port))

    entry = run(lookup())
    if entry is None:
        error(f"No process listening on port {port}")
        raise typer.Exit(1)

    if as_json:
        print(json.dumps(entry.to_dict(), indent=2))
        return

    console.print(f"[bold cyan]Port {entry.port}[/bold cyan] ({entry.protocol} {entry.address})")
    console.print(f"  Process:     [green]{entry.process_name}[/green] (PID {entry.pid})")
    if entry.app_name:
        console.print(f"  App:         {entry.app_name}")
    console.print(f"  Category:    {entry.category.value}")
    if entry.user:
        console.print(f"  User:        {entry.user}")
    if entry.command_path:
        console.print(f"  Command:     {entry.command_path}")
    if entry.cwd:
        console.print(f"  Directory:   {entry.cwd}")
    console.print(
        f"  Status:      {entry.connection_status} ({entry.connection_count} connection(s))"
    )
    console.print(f"  CPU:         {format_cpu(entry.cpu_usage)}")
    console.print(f"  Memory:      {format_memory(entry.memory_rss)}")
    console.print(f"  Uptime:      {format_uptime(entry.process_start_time)}")

    container = entry.docker_container
    if container:
        console.print(f"  [blue]Docker:      {container.name}[/blue] ({container.image})")
        if container.compose_working_dir or container.compose_config_files:
            project = container.compose_working_dir or container.compose_config_files
            console.print(f"  Compose:     {project}")
    if entry.is_self_port:
        console.print("  [red]This port is served by Portboard itself[/red]")

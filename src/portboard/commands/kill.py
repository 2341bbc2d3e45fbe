"""Kill command - terminate the process behind a port or pid."""

import typer

from ..errors import ValidationError
from ..validation import validate_positive_int
from .common import console, error, get_app_context, run, success, warning


def kill(
    target: str = typer.Argument(..., help="Port number or PID"),
    force: bool = typer.Option(False, "-f", "--force", help="Skip all safety checks"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Do not ask for confirmation"),
) -> None:
    """Kill a process by port number or PID.

    A port match takes priority over a PID match. Docker containers are
    stopped, and Compose projects brought down, instead of killing Docker's
    port forwarder.

    Examples:
        portboard kill 3000
        portboard kill 48211 --yes
        portboard kill 3033 --force
    """
    ctx = get_app_context()
    service = ctx.service

    try:
        number = validate_positive_int(target, "port/PID")
    except ValidationError as e:
        error(e.message)
        raise typer.Exit(1)

    ports = run(service.list_ports())
    entry, ambiguous = run(service.resolve_target(number, ports))

    if entry is None:
        error(f"No process found for port/PID {number}")
        raise typer.Exit(1)

    if ambiguous:
        by_pid = next(p for p in ports if p.pid == number)
        warning(f"Ambiguous target: {number} is both a port and a PID")
        console.print(f"  Port match: {entry.port} → {entry.process_name} (PID {entry.pid})")
        console.print(f"  PID match:  {by_pid.port} → {by_pid.process_name} (PID {by_pid.pid})")
        console.print(f"[dim]Port takes priority. Continuing with port {number}...[/dim]")

    if entry.is_self_port and not force:
        error("Cannot kill the Portboard server itself")
        console.print("[yellow]Use --force to override (this stops the interface)[/yellow]")
        raise typer.Exit(1)

    if not yes and not force:
        warning("About to kill:")
        console.print(f"  Port:     [cyan]{entry.port}[/cyan]")
        console.print(f"  Process:  {entry.process_name} (PID {entry.pid})")
        console.print(f"  Category: {entry.category.value}")
        if entry.docker_container:
            console.print(f"  [blue]Docker:   {entry.docker_container.name}[/blue]")
        if not typer.confirm("Continue?"):
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit(0)

    result = run(service.terminate(entry.pid, force=force, port=entry.port, ports=ports))
    success(result.message)

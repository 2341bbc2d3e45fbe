"""List command - show listening ports."""

import json

import typer
from rich.table import Table

from ..models import Category
from ..service import filter_ports, sort_ports
from .common import console, format_cpu, format_memory, get_app_context, run

CATEGORY_STYLES = {
    Category.SYSTEM: "dim",
    Category.DEVELOPMENT: "cyan",
    Category.DATABASE: "magenta",
    Category.WEB_SERVER: "blue",
    Category.APPLICATIONS: "yellow",
    Category.USER: "green",
}


def list_cmd(
    category: str | None = typer.Option(None, "-c", "--category", help="Only this category"),
    search: str | None = typer.Option(
        None, "-s", "--search", help="Match port, process name, path or app name"
    ),
    sort: str = typer.Option("port", "--sort", help="Sort field (e.g. port, pid, cpuUsage)"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List listening ports and the processes behind them.

    Examples:
        portboard list
        portboard list --category database
        portboard list -s node --sort memoryRSS
        portboard list --json
    """
    ctx = get_app_context()

    async def collect():
        ports = await ctx.service.list_ports()
        return sort_ports(filter_ports(ports, category=category, search=search), sort)

    ports = run(collect())

    if as_json:
        print(json.dumps([port.to_dict() for port in ports], indent=2))
        return

    if not ports:
        console.print("[yellow]No listening ports found[/yellow]")
        return

    table = Table(title="Listening Ports")
    table.add_column("Port", style="yellow", justify="right")
    table.add_column("PID", justify="right")
    table.add_column("Process", style="green")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Conns", justify="right")
    table.add_column("CPU", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("Docker", style="blue")

    for port in ports:
        style = CATEGORY_STYLES.get(port.category, "")
        name = port.app_name or port.process_name
        if port.is_self_port:
            name += " [red](portboard)[/red]"
        status = (
            "[green]● active[/green]"
            if port.connection_status == "active"
            else "[dim]○ idle[/dim]"
        )
        table.add_row(
            str(port.port),
            str(port.pid),
            name,
            f"[{style}]{port.category.value}[/{style}]" if style else port.category.value,
            status,
            str(port.connection_count),
            format_cpu(port.cpu_usage),
            format_memory(port.memory_rss),
            port.docker_container.name if port.docker_container else "-",
        )

    console.print(table)
    console.print(f"[dim]{len(ports)} port(s)[/dim]")

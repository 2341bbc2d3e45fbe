"""Serve command - run the HTTP API."""

import asyncio
import logging
import socket

import typer
import uvicorn

from ..api import create_app
from ..console import DEBUG, setup_logging
from ..context import AppContext
from ..errors import PortboardError
from .common import console, debug, error, get_app_context, warning


def find_available_port(host: str, start: int, attempts: int) -> int | None:
    """First port in [start, start + attempts) that can be bound on host."""
    for port in range(start, start + attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                debug(f"Port {port} is in use")
                continue
        return port
    return None


async def _serve(server: uvicorn.Server, ctx: AppContext, url: str, open_browser: bool) -> None:
    task = asyncio.create_task(server.serve())
    while not server.started and not task.done():
        await asyncio.sleep(0.05)
    if server.started and open_browser:
        try:
            ctx.platform.browser.open_url(url)
        except (PortboardError, OSError) as e:
            warning(f"Could not open browser: {e}")
    await task


def serve(
    port: int | None = typer.Option(None, "-p", "--port", help="Port to listen on"),
    host: str | None = typer.Option(None, "--host", help="Interface to bind"),
    no_open: bool = typer.Option(False, "--no-open", help="Do not open the browser"),
) -> None:
    """Start the Portboard web server.

    When the port is taken, the next free one is used.

    Examples:
        portboard serve
        portboard serve --port 4000 --no-open
    """
    setup_logging(logging.DEBUG if DEBUG else logging.INFO)
    ctx = get_app_context()
    settings = ctx.settings
    host = host or settings.host
    requested = port or settings.port

    bound = find_available_port(host, requested, settings.max_port_attempts)
    if bound is None:
        error(f"Failed to start server after {settings.max_port_attempts} attempts")
        raise typer.Exit(1)
    if bound != requested:
        warning(f"Port {requested} is in use, using {bound}")

    ctx.state.set_server_port(bound)
    display_host = "localhost" if host in ("127.0.0.1", "0.0.0.0") else host
    url = f"http://{display_host}:{bound}"
    console.print(f"[bold cyan]Portboard[/bold cyan] running at [green]{url}[/green]")

    config = uvicorn.Config(
        create_app(ctx),
        host=host,
        port=bound,
        log_level="debug" if DEBUG else "info",
        log_config=None,
    )
    asyncio.run(_serve(uvicorn.Server(config), ctx, url, not no_open))

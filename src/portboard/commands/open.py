"""Open command - open a port in the browser."""

import typer

from ..validation import validate_port
from .common import get_app_context, run, success


def open_cmd(
    port: str = typer.Argument(..., help="Port number"),
) -> None:
    """Open http://localhost:<port> in the default browser.

    Examples:
        portboard open 3000
    """
    ctx = get_app_context()

    async def open_port() -> str:
        url = ctx.service.localhost_url(validate_port(port))
        ctx.platform.browser.open_url(url)
        return url

    success(f"Opened {run(open_port())}")

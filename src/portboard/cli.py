"""Typer CLI for Portboard - Main entry point."""

import typer

from . import __version__
from .commands import docker_app, info, kill, list_cmd, mcp_cmd, open_cmd, serve
from .console import setup_logging

app = typer.Typer(
    name="portboard",
    help="See what is listening on your ports, and stop it",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"portboard version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """See what is listening on your ports, and stop it.

    Without a command, starts the web server.
    """
    if ctx.invoked_subcommand is None:
        serve(port=None, host=None, no_open=False)
        return
    setup_logging()

# Register all commands
app.command(name="list")(list_cmd)
app.command()(info)
app.command()(kill)
app.command(name="open")(open_cmd)
app.command()(serve)
app.command(name="mcp")(mcp_cmd)
app.add_typer(docker_app, name="docker")


def main() -> None:
    """Main entry point."""
    app()

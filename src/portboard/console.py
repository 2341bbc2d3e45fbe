"""Console utilities for the portboard CLI."""

import logging
import os
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Shared console instances
console = Console()
error_console = Console(stderr=True)

# Debug mode - enabled by PORTBOARD_DEBUG environment variable
DEBUG = os.getenv("PORTBOARD_DEBUG", "").lower() in ("1", "true", "yes")


def setup_logging(level: int | None = None) -> None:
    """Route library logging to stderr through Rich.

    Args:
        level: Logging level. Defaults to DEBUG when PORTBOARD_DEBUG is set,
            WARNING otherwise.
    """
    if level is None:
        level = logging.DEBUG if DEBUG else logging.WARNING

    logger = logging.getLogger("portboard")
    logger.setLevel(level)
    logger.handlers.clear()
    handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False


def debug(message: str, **kwargs: Any) -> None:
    """Print debug message if DEBUG mode is enabled.

    Args:
        message: Message to print
        **kwargs: Additional arguments for console.print
    """
    if DEBUG:
        error_console.print(f"[dim][DEBUG][/dim] {message}", **kwargs)


def info(message: str, **kwargs: Any) -> None:
    """Print info message."""
    console.print(message, **kwargs)


def success(message: str, **kwargs: Any) -> None:
    """Print success message in green."""
    console.print(f"[green]{message}[/green]", **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Print warning message in yellow."""
    console.print(f"[yellow]{message}[/yellow]", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print error message in red to stderr.

    Args:
        message: Message to print
        **kwargs: Additional arguments for console.print
    """
    error_console.print(f"[red]Error:[/red] {message}", **kwargs)

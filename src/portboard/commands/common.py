"""Common utilities for CLI commands."""

import asyncio
from collections.abc import Coroutine
from datetime import datetime
from typing import Any, TypeVar

import typer

from ..console import console, debug, error, error_console, info, success, warning
from ..context import AppContext, build_context
from ..errors import PortboardError, UnsupportedPlatformError

T = TypeVar("T")

# Re-export console utilities
__all__ = [
    "console",
    "error_console",
    "debug",
    "info",
    "success",
    "warning",
    "error",
    "get_app_context",
    "run",
    "format_cpu",
    "format_memory",
    "format_uptime",
]


def get_app_context() -> AppContext:
    """Build the application context, exiting on an unsupported OS."""
    try:
        return build_context()
    except UnsupportedPlatformError as e:
        error(str(e))
        raise typer.Exit(1)


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Drive a coroutine to completion, reporting user-facing errors.

    Raises:
        typer.Exit: With code 1 when the coroutine raises PortboardError
    """
    try:
        return asyncio.run(coro)
    except PortboardError as e:
        error(e.message)
        raise typer.Exit(1)


def format_cpu(cpu: float | None) -> str:
    if cpu is None:
        return "-"
    return f"{cpu:.1f}%"


def format_memory(rss_kb: int | None) -> str:
    """Resident memory in whole megabytes."""
    if rss_kb is None:
        return "-"
    if rss_kb < 10:
        return "~0 MB"
    return f"{rss_kb / 1024:.0f} MB"


def format_uptime(start: datetime | None) -> str:
    """Elapsed time since start, e.g. 2d 3h, 4h 12m or 7m."""
    if start is None:
        return "-"
    seconds = max(0, int((datetime.now(start.tzinfo) - start).total_seconds()))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"

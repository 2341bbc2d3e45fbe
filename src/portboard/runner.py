"""Async subprocess execution for the platform providers."""

import asyncio
import logging
import os
import subprocess
import sys
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from .errors import PortboardError, UpstreamToolError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0

# ps/lsof output is parsed, so pin the locale
_C_LOCALE = {"LC_ALL": "C", "LANG": "C"}


@dataclass
class CommandResult:
    """Captured output of a finished command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


Runner = Callable[..., Awaitable[CommandResult]]


async def run_command(
    args: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    check: bool = False,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command without a shell and capture its output.

    Args:
        args: Program and arguments
        timeout: Seconds before the child is killed
        check: Raise on a non-zero exit status
        cwd: Working directory for the child
        env: Extra environment variables for the child

    Returns:
        CommandResult with decoded stdout/stderr

    Raises:
        UpstreamToolError: If the program is missing, times out, or exits
            non-zero while check is set
    """
    argv = [str(a) for a in args]
    env = {**os.environ, **_C_LOCALE, **(env or {})}
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=str(cwd) if cwd else None,
            env=env,
        )
    except FileNotFoundError as e:
        raise UpstreamToolError(f"Command not found: {argv[0]}") from e
    except OSError as e:
        raise UpstreamToolError(f"Failed to run {argv[0]}", str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise UpstreamToolError(f"{argv[0]} timed out after {timeout:g}s") from e

    result = CommandResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if check and not result.ok:
        raise UpstreamToolError(
            f"{argv[0]} exited with status {result.returncode}", result.stderr
        )
    return result


def spawn_detached(args: Sequence[str], cwd: str | Path | None = None) -> None:
    """Launch a GUI program and return without waiting for it.

    Raises:
        UpstreamToolError: If the program cannot be started
    """
    argv = [str(a) for a in args]
    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "cwd": str(cwd) if cwd else None,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0)
    else:
        kwargs["start_new_session"] = True
    try:
        subprocess.Popen(argv, **kwargs)
    except OSError as e:
        raise UpstreamToolError(f"Failed to launch {argv[0]}", str(e)) from e
    logger.info("Launched %s", " ".join(argv))


async def best_effort(operation: Awaitable[T], default: T, what: str) -> T:
    """Await an enrichment step, degrading to a default on failure.

    Listing calls must not go through here; their errors are load-bearing.

    Args:
        operation: Awaitable producing the enrichment
        default: Value returned when the step fails
        what: Short description for the debug log

    Returns:
        The operation's result or the default
    """
    try:
        return await operation
    except (PortboardError, OSError, ValueError, asyncio.TimeoutError) as e:
        logger.debug("%s degraded: %s", what, e)
        return default

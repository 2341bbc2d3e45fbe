"""IDE and terminal tables, detection and launching.

Each platform lists the tools it knows about as ToolSpec entries. A tool is
detected when one of its commands is on PATH or one of its install paths
exists. Launching always uses an argument vector for the tool's id; nothing
goes through a shell.
"""

import glob
import logging
import os
import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .errors import ValidationError
from .models import ApplicationInfo
from .validation import validate_container_name, validate_open_directory, validate_shell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A known IDE or terminal."""

    id: str
    name: str
    commands: tuple[str, ...] = ()
    install_paths: tuple[str, ...] = ()


def _expand(path: str) -> list[str]:
    """Expand ~, environment variables and globs in an install path."""
    expanded = os.path.expandvars(os.path.expanduser(path))
    if "%" in expanded or "$" in expanded:
        # Unset variable, e.g. %CMDER_ROOT%
        return []
    if any(ch in expanded for ch in "*?["):
        return sorted(glob.glob(expanded))
    return [expanded]


def locate(spec: ToolSpec, which: Callable[[str], str | None] = shutil.which) -> str | None:
    """Find the command to run for a tool.

    PATH commands win; otherwise the first existing install path is used.

    Returns:
        The command name found on PATH, an absolute install path, or None
    """
    for command in spec.commands:
        if which(command):
            return command
    return installed_path(spec)


def installed_path(spec: ToolSpec) -> str | None:
    """First well-known install location of a tool that exists."""
    for candidate in spec.install_paths:
        for path in _expand(candidate):
            if os.path.exists(path):
                return path
    return None


async def detect(
    specs: tuple[ToolSpec, ...],
    which: Callable[[str], str | None] = shutil.which,
    icon_for: Callable[[str], Awaitable[str | None]] | None = None,
) -> list[ApplicationInfo]:
    """Probe a tool table and describe the tools that are installed.

    Icons are looked up from the install location when there is one, since
    a bare PATH command says nothing about the application bundle.
    """
    found: list[ApplicationInfo] = []
    for spec in specs:
        command = locate(spec, which)
        if command is None:
            continue
        icon = None
        if icon_for is not None:
            icon = await icon_for(installed_path(spec) or command)
        found.append(ApplicationInfo(id=spec.id, name=spec.name, command=command, icon_path=icon))
    return found


class ApplicationCatalog:
    """Lazily detected IDEs and terminals.

    Detection runs once per kind and is cached until reset(). Two callers
    racing on the first population may both detect; the last result wins,
    which is harmless.
    """

    def __init__(self, provider):
        self.provider = provider
        self._ides: list[ApplicationInfo] | None = None
        self._terminals: list[ApplicationInfo] | None = None

    async def ides(self) -> list[ApplicationInfo]:
        if self._ides is None:
            self._ides = await self.provider.detect_ides()
            logger.info(
                "Detected %d IDEs: %s", len(self._ides), ", ".join(a.name for a in self._ides)
            )
        return self._ides

    async def terminals(self) -> list[ApplicationInfo]:
        if self._terminals is None:
            self._terminals = await self.provider.detect_terminals()
            logger.info(
                "Detected %d terminals: %s",
                len(self._terminals),
                ", ".join(a.name for a in self._terminals),
            )
        return self._terminals

    def reset(self) -> None:
        self._ides = None
        self._terminals = None

    @staticmethod
    def _find(apps: list[ApplicationInfo], command: str, kind: str) -> ApplicationInfo:
        for app in apps:
            if command in (app.command, app.id):
                return app
        raise ValidationError(f"Unknown {kind}: {command}")

    async def open_in_ide(self, command: str, path: str) -> None:
        """Open a directory in a detected IDE.

        Raises:
            ValidationError: If the IDE was not detected or the path is invalid
            NotFoundError: If the directory does not exist
        """
        app = self._find(await self.ides(), command, "IDE")
        directory = validate_open_directory(path)
        self.provider.open_in_ide(app, str(directory))

    async def open_in_terminal(self, command: str, path: str) -> None:
        app = self._find(await self.terminals(), command, "terminal")
        directory = validate_open_directory(path)
        self.provider.open_in_terminal(app, str(directory))

    async def open_container_shell(self, command: str, container: str, shell: str = "sh") -> None:
        """Run an interactive shell inside a container in a detected terminal."""
        app = self._find(await self.terminals(), command, "terminal")
        validate_container_name(container)
        validate_shell(shell)
        self.provider.open_container_shell(app, container, shell)


def docker_exec_argv(container: str, shell: str) -> list[str]:
    return ["docker", "exec", "-it", container, shell]

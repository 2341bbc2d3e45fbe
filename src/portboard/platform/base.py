"""Capability interfaces shared by every platform.

The base classes double as the behaviour of an unsupported platform:
enrichment degrades to empty results, while operations that cannot degrade
raise UpstreamToolError.
"""

import logging
import shutil
import socket
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from urllib.parse import urlparse

import psutil

from ..applications import ToolSpec, detect
from ..errors import UpstreamToolError, ValidationError
from ..icons import IconCache
from ..models import ApplicationInfo, BasicPortInfo, ProcessMetadata
from ..runner import (
    DEFAULT_TIMEOUT,
    CommandResult,
    Runner,
    best_effort,
    run_command,
    spawn_detached,
)

logger = logging.getLogger(__name__)

PortPid = tuple[int, int]


class CommandMixin:
    """Holds the subprocess runner and its timeout."""

    def __init__(self, runner: Runner = run_command, timeout: float = DEFAULT_TIMEOUT):
        self.runner = runner
        self.timeout = timeout

    async def run(self, args: Sequence[str], **kwargs) -> CommandResult:
        return await self.runner(list(args), timeout=self.timeout, **kwargs)


class PortProvider(CommandMixin):
    """Lists listening sockets and counts their established connections."""

    async def list_listening_ports(self) -> list[BasicPortInfo]:
        raise UpstreamToolError("Listing ports is not supported on this platform")

    async def batch_connection_counts(self, pairs: Iterable[PortPid]) -> dict[PortPid, int]:
        return {pair: 0 for pair in pairs}


class ProcessProvider(CommandMixin):
    """Process ownership, termination and metadata."""

    def __init__(
        self,
        runner: Runner = run_command,
        timeout: float = DEFAULT_TIMEOUT,
        icons: "IconProvider | None" = None,
    ):
        super().__init__(runner, timeout)
        self.icons = icons

    async def is_owned_by_current_user(self, pid: int) -> bool:
        return False

    async def kill_process(self, pid: int) -> None:
        raise UpstreamToolError("Killing processes is not supported on this platform")

    async def batch_metadata(self, processes: dict[int, str]) -> dict[int, ProcessMetadata]:
        """Collect metadata for many pids.

        Args:
            processes: pid -> process name

        Returns:
            pid -> metadata; pids that could not be inspected are absent
        """
        return {}


class IconProvider(CommandMixin):
    """Extracts application icons into the shared IconCache."""

    def __init__(
        self,
        cache: IconCache,
        runner: Runner = run_command,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(runner, timeout)
        self.cache = cache

    async def extract_icon(self, app_path: str) -> str | None:
        """Return an /api/icons/<hash>.png URI for the app, or None."""
        return None


class ApplicationProvider:
    """Detects IDEs and terminals and opens them at a directory."""

    ide_specs: tuple[ToolSpec, ...] = ()
    terminal_specs: tuple[ToolSpec, ...] = ()

    def __init__(self, icons: IconProvider | None = None, which=shutil.which, spawn=spawn_detached):
        self.icons = icons
        self.which = which
        self.spawn = spawn

    async def _icon_for(self, command: str) -> str | None:
        if self.icons is None:
            return None
        return await best_effort(self.icons.extract_icon(command), None, f"icon for {command}")

    async def detect_ides(self) -> list[ApplicationInfo]:
        return await detect(self.ide_specs, self.which, self._icon_for)

    async def detect_terminals(self) -> list[ApplicationInfo]:
        return await detect(self.terminal_specs, self.which, self._icon_for)

    def ide_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        return [app.command, path], None

    def terminal_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        """Argument vector and working directory that open a terminal at path."""
        raise UpstreamToolError("Opening terminals is not supported on this platform")

    def container_shell_argv(self, app: ApplicationInfo, container: str, shell: str) -> list[str]:
        raise UpstreamToolError("Opening container shells is not supported on this platform")

    def open_in_ide(self, app: ApplicationInfo, path: str) -> None:
        argv, cwd = self.ide_argv(app, path)
        self.spawn(argv, cwd=cwd)

    def open_in_terminal(self, app: ApplicationInfo, path: str) -> None:
        argv, cwd = self.terminal_argv(app, path)
        self.spawn(argv, cwd=cwd)

    def open_container_shell(self, app: ApplicationInfo, container: str, shell: str = "sh") -> None:
        self.spawn(self.container_shell_argv(app, container, shell))


class BrowserProvider:
    """Opens URLs and reports the LAN address."""

    open_command: tuple[str, ...] = ()

    def __init__(self, spawn=spawn_detached):
        self.spawn = spawn

    def open_url(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc or any(
            ch.isspace() or ch in "\"'&|<>^" for ch in url
        ):
            raise ValidationError(f"Invalid URL: {url}")
        if not self.open_command:
            raise UpstreamToolError("Opening a browser is not supported on this platform")
        self.spawn([*self.open_command, url])

    def local_ip_address(self) -> str | None:
        """First non-loopback IPv4 address, or None."""
        try:
            interfaces = psutil.net_if_addrs()
        except OSError as e:
            logger.debug("Interface lookup failed: %s", e)
            return None
        for addresses in interfaces.values():
            for address in addresses:
                if address.family == socket.AF_INET and not address.address.startswith("127."):
                    return address.address
        return None


@dataclass
class PlatformProvider:
    """The five capabilities for one operating system."""

    name: str
    ports: PortProvider
    processes: ProcessProvider
    icons: IconProvider
    applications: ApplicationProvider
    browser: BrowserProvider

"""Port aggregation: one snapshot of every listening port, enriched.

list_ports() is the core operation. It runs two concurrent fan-outs:

1. Docker port mappings and the port listing
2. Connection counts and process metadata, keyed by the listing

then merges per (port, pid), classifies, dedupes and sorts. Only the port
listing is load-bearing; the other steps degrade to empty/zero.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from .classifier import classify
from .docker import DockerClient, compose_directory
from .errors import NotFoundError, ProtectedResourceError, ValidationError
from .models import Category, PortInfo, ProcessMetadata, SortKey, TerminationResult
from .platform import PlatformProvider
from .runner import best_effort
from .state import ServerState

logger = logging.getLogger(__name__)

DOCKER_ENGINE_NAMES = ("docker", "vpnkit", "com.docker")

HTTPS_PORT = 443


def is_docker_engine(process_name: str) -> bool:
    """Whether a listening process is Docker's port forwarder."""
    name = process_name.lower()
    return name == "rootlessport" or any(part in name for part in DOCKER_ENGINE_NAMES)


SORT_FIELDS: dict[SortKey, Callable[[PortInfo], Any]] = {
    SortKey.PORT: lambda p: p.port,
    SortKey.PROCESS_NAME: lambda p: p.process_name.lower(),
    SortKey.PID: lambda p: p.pid,
    SortKey.CONNECTION_STATUS: lambda p: p.connection_status,
    SortKey.CPU_USAGE: lambda p: p.cpu_usage,
    SortKey.MEMORY_USAGE: lambda p: p.memory_usage,
    SortKey.MEMORY_RSS: lambda p: p.memory_rss,
    SortKey.CONNECTION_COUNT: lambda p: p.connection_count,
}


def parse_sort_key(value: str | SortKey) -> SortKey:
    try:
        return SortKey(value)
    except ValueError:
        allowed = ", ".join(key.value for key in SortKey)
        raise ValidationError(
            f"Invalid sort field: {value} (expected one of: {allowed})"
        ) from None


def parse_category(value: str | Category) -> Category:
    try:
        return Category(value)
    except ValueError:
        allowed = ", ".join(category.value for category in Category)
        raise ValidationError(
            f"Invalid category: {value} (expected one of: {allowed})"
        ) from None


def filter_ports(
    ports: Iterable[PortInfo],
    category: str | Category | None = None,
    search: str | None = None,
) -> list[PortInfo]:
    """Filter by category and a case-insensitive search term.

    The search matches the port number, process name, command path or app
    name.
    """
    result = list(ports)
    if category:
        wanted = parse_category(category)
        result = [p for p in result if p.category == wanted]
    if search:
        term = search.lower()
        result = [
            p
            for p in result
            if term in str(p.port)
            or term in p.process_name.lower()
            or term in (p.command_path or "").lower()
            or term in (p.app_name or "").lower()
        ]
    return result


def sort_ports(ports: Iterable[PortInfo], key: str | SortKey) -> list[PortInfo]:
    """Stable ascending sort; entries without a value for the field go last."""
    field = SORT_FIELDS[parse_sort_key(key)]

    def sort_key(port: PortInfo):
        value = field(port)
        return (value is None, value if value is not None else 0)

    return sorted(ports, key=sort_key)


class PortService:
    """Aggregates ports and performs Docker-aware termination."""

    def __init__(self, platform: PlatformProvider, docker: DockerClient, state: ServerState):
        self.platform = platform
        self.docker = docker
        self.state = state

    async def list_ports(self) -> list[PortInfo]:
        """Snapshot of all listening ports, unique by (port, pid), sorted by port.

        Raises:
            UpstreamToolError: If the port listing itself fails
        """
        docker_map, listening = await asyncio.gather(
            best_effort(self.docker.get_port_mappings(), {}, "docker port mappings"),
            self.platform.ports.list_listening_ports(),
        )
        if not listening:
            return []

        pairs = [(info.port, info.pid) for info in listening]
        processes: dict[int, str] = {}
        for info in listening:
            processes.setdefault(info.pid, info.process_name)

        counts, metadata = await asyncio.gather(
            best_effort(
                self.platform.ports.batch_connection_counts(pairs), {}, "connection counts"
            ),
            best_effort(
                self.platform.processes.batch_metadata(processes), {}, "process metadata"
            ),
        )
        protected = self.state.self_ports()

        results: list[PortInfo] = []
        seen: set[tuple[int, int]] = set()
        for info in listening:
            key = (info.port, info.pid)
            # IPv4 and IPv6 listeners of one process collapse; first wins
            if key in seen:
                continue
            seen.add(key)

            meta = metadata.get(info.pid) or ProcessMetadata()
            container = None
            if is_docker_engine(info.process_name):
                container = docker_map.get(info.port)
            app_name = container.name if container else meta.app_name
            category = classify(info.process_name, app_name, meta.command_path, container)

            results.append(
                PortInfo(
                    port=info.port,
                    pid=info.pid,
                    process_name=info.process_name,
                    protocol=info.protocol,
                    address=info.bind_address,
                    user=info.user,
                    category=category,
                    connection_count=counts.get(key, 0),
                    command_path=meta.command_path,
                    cwd=meta.cwd,
                    app_name=app_name,
                    app_icon_path=meta.app_icon_path,
                    cpu_usage=meta.cpu_usage,
                    memory_usage=meta.memory_usage,
                    memory_rss=meta.memory_rss,
                    process_start_time=meta.process_start_time,
                    docker_container=container,
                    is_self_port=info.port in protected,
                )
            )

        results.sort(key=lambda p: p.port)
        return results

    async def find_port(self, port: int, ports: list[PortInfo] | None = None) -> PortInfo | None:
        if ports is None:
            ports = await self.list_ports()
        return next((p for p in ports if p.port == port), None)

    async def resolve_target(
        self, number: int, ports: list[PortInfo] | None = None
    ) -> tuple[PortInfo | None, bool]:
        """Resolve a number given as "port or pid".

        A port match wins over a pid match.

        Returns:
            (entry or None, True when the number also matched another entry
            by pid)
        """
        if ports is None:
            ports = await self.list_ports()
        by_port = next((p for p in ports if p.port == number), None)
        by_pid = next((p for p in ports if p.pid == number), None)
        if by_port is not None:
            return by_port, by_pid is not None and by_pid is not by_port
        return by_pid, False

    async def terminate(
        self,
        pid: int,
        force: bool = False,
        port: int | None = None,
        ports: list[PortInfo] | None = None,
    ) -> TerminationResult:
        """Stop whatever owns a pid.

        Compose containers are brought down with their project, other
        containers are stopped, and plain processes get SIGTERM (or taskkill).

        Args:
            pid: Process to terminate
            force: Allow terminating Portboard's own ports
            port: Which of the pid's ports was targeted, to pick the
                container when the pid is Docker's forwarder
            ports: A snapshot to reuse instead of listing again

        Raises:
            ProtectedResourceError: If the pid serves a self port and force
                is not set
            NotFoundError: If the process or container does not exist
            PermissionDeniedError: If the process belongs to another user
        """
        if ports is None:
            ports = await self.list_ports()
        entries = [p for p in ports if p.pid == pid]
        if port is not None:
            entries = [p for p in entries if p.port == port] or entries

        for entry in entries:
            if entry.is_self_port and not force:
                raise ProtectedResourceError(
                    f"Port {entry.port} is used by Portboard itself; "
                    "use force to terminate it anyway"
                )

        target = next((p for p in entries if p.docker_container), None)
        if target is not None and target.docker_container is not None:
            container = target.docker_container
            directory = compose_directory(container)
            if directory:
                await self.docker.stop_compose(directory)
                return TerminationResult(
                    action="compose-stopped",
                    pid=pid,
                    port=target.port,
                    message=f"Stopped compose project for {container.name}",
                    details={"container": container.name, "directory": directory},
                )
            await self.docker.stop_container(container.name)
            return TerminationResult(
                action="container-stopped",
                pid=pid,
                port=target.port,
                message=f"Stopped container {container.name}",
                details={"container": container.name},
            )

        await self.platform.processes.kill_process(pid)
        return TerminationResult(
            action="killed",
            pid=pid,
            port=entries[0].port if entries else None,
            message=f"Killed process {pid}",
        )

    async def find_container(self, name_or_id: str, ports: list[PortInfo] | None = None):
        """Find a running container publishing a port, by name or id prefix.

        Raises:
            NotFoundError: If no listed port belongs to such a container
        """
        if ports is None:
            ports = await self.list_ports()
        for entry in ports:
            container = entry.docker_container
            if container and (
                container.name == name_or_id or container.id.startswith(name_or_id)
            ):
                return container
        raise NotFoundError(f"Container not found: {name_or_id}")

    async def stop_docker(self, name_or_id: str, use_compose: bool = False) -> str:
        """Stop a container, or its whole Compose project.

        Returns:
            A message describing what was stopped
        """
        if not use_compose:
            await self.docker.stop_container(name_or_id)
            return f"Stopped container {name_or_id}"

        container = await self.find_container(name_or_id)
        directory = compose_directory(container)
        if not directory:
            raise ValidationError(f"Container {name_or_id} is not part of a compose project")
        await self.docker.stop_compose(directory)
        return f"Stopped compose project in {directory}"

    def localhost_url(self, port: int) -> str:
        return f"{scheme_for(port)}://localhost:{port}"

    def network_url(self, port: int) -> str | None:
        """URL of a port on the LAN address, or None without one."""
        address = self.platform.browser.local_ip_address()
        if not address:
            return None
        return f"{scheme_for(port)}://{address}:{port}"


def scheme_for(port: int) -> str:
    return "https" if port == HTTPS_PORT else "http"

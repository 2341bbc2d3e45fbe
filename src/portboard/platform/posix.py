"""lsof and ps based providers shared by macOS and Linux."""

import asyncio
import json
import logging
import os
import signal
from pathlib import Path

from .. import parsers
from ..connections import batch_connection_counts
from ..errors import NotFoundError, PermissionDeniedError, UpstreamToolError
from ..models import BasicPortInfo, ProcessMetadata
from ..runner import best_effort
from .base import PortPid, PortProvider, ProcessProvider

logger = logging.getLogger(__name__)

LSOF_LISTEN = ["lsof", "+c", "0", "-i", "-P", "-n"]


class LsofPortProvider(PortProvider):
    """Port listing through lsof.

    filter_by_pid restricts the connection query to the owning pids
    (Linux); otherwise one system-wide query is made (macOS).
    """

    filter_by_pid = False

    async def list_listening_ports(self) -> list[BasicPortInfo]:
        result = await self.run(LSOF_LISTEN)
        # lsof exits 1 with no output when nothing matches
        if not result.ok and result.stderr.strip() and not result.stdout.strip():
            raise UpstreamToolError("Failed to list listening ports", result.stderr)
        return parsers.parse_lsof_listening(result.stdout)

    async def _established(self, pids: list[int]) -> str:
        args = ["lsof", "-P", "-n", "-i"]
        if self.filter_by_pid:
            args += ["-a", "-p", ",".join(str(pid) for pid in pids)]
        result = await self.run(args)
        return result.stdout

    async def batch_connection_counts(self, pairs) -> dict[PortPid, int]:
        return await batch_connection_counts(
            self._established, parsers.parse_lsof_connections, pairs
        )


class PosixProcessProvider(ProcessProvider):
    """Process lifecycle and metadata through ps and lsof."""

    async def _uid_of(self, pid: int) -> int | None:
        result = await self.run(["ps", "-p", str(pid), "-o", "uid="])
        value = result.stdout.strip()
        if not result.ok or not value:
            return None
        try:
            return int(value.split()[0])
        except ValueError:
            return None

    async def is_owned_by_current_user(self, pid: int) -> bool:
        try:
            uid = await self._uid_of(pid)
        except UpstreamToolError as e:
            logger.debug("Ownership check for %d failed: %s", pid, e)
            return False
        return uid is not None and uid == os.getuid()

    async def kill_process(self, pid: int) -> None:
        """Send SIGTERM to a process owned by the current user.

        Raises:
            NotFoundError: If the process does not exist
            PermissionDeniedError: If another user owns it
        """
        uid = await self._uid_of(pid)
        if uid is None:
            raise NotFoundError(f"Process {pid} not found")
        if uid != os.getuid():
            raise PermissionDeniedError(
                f"Permission denied: process {pid} is owned by another user"
            )
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError as e:
            raise NotFoundError(f"Process {pid} not found") from e
        except PermissionError as e:
            raise PermissionDeniedError(f"Permission denied: cannot signal process {pid}") from e
        logger.info("Sent SIGTERM to process %d", pid)

    async def _ps(self, pids: str, columns: str) -> str:
        result = await self.run(["ps", "-p", pids, "-o", columns])
        return result.stdout

    async def _resources(self, pids: str) -> dict[int, tuple[float, float, int]]:
        return parsers.parse_ps_resources(await self._ps(pids, "pid=,%cpu=,%mem=,rss="))

    async def _start_times(self, pids: str):
        return parsers.parse_ps_start_times(await self._ps(pids, "pid=,lstart="))

    async def _commands(self, pids: str) -> dict[int, str]:
        return parsers.parse_ps_commands(await self._ps(pids, "pid=,command="))

    async def _open_files(self, pids: str) -> dict[int, dict[str, str]]:
        result = await self.run(["lsof", "-a", "-p", pids, "-d", "cwd,txt", "-Fpfn"])
        return parsers.parse_lsof_fields(result.stdout)

    async def batch_metadata(self, processes: dict[int, str]) -> dict[int, ProcessMetadata]:
        if not processes:
            return {}
        pids = ",".join(str(pid) for pid in sorted(processes))

        resources, starts, commands, files = await asyncio.gather(
            best_effort(self._resources(pids), {}, "ps resource usage"),
            best_effort(self._start_times(pids), {}, "ps start times"),
            best_effort(self._commands(pids), {}, "ps commands"),
            best_effort(self._open_files(pids), {}, "lsof cwd/txt"),
        )

        metadata: dict[int, ProcessMetadata] = {}
        for pid in processes:
            meta = ProcessMetadata()
            if pid in resources:
                meta.cpu_usage, meta.memory_usage, meta.memory_rss = resources[pid]
            meta.process_start_time = starts.get(pid)
            opened = files.get(pid, {})
            meta.command_path = opened.get("txt") or commands.get(pid)
            meta.cwd = opened.get("cwd")
            metadata[pid] = meta

        await self.enrich(metadata)
        return metadata

    async def enrich(self, metadata: dict[int, ProcessMetadata]) -> None:
        """Platform hook run after the ps/lsof merge."""
        for meta in metadata.values():
            if meta.app_name is None and meta.cwd:
                meta.app_name = package_name(meta.cwd)


def package_name(cwd: str) -> str | None:
    """The "name" field of package.json in a working directory, if any."""
    try:
        with open(Path(cwd) / "package.json") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    name = data.get("name") if isinstance(data, dict) else None
    return name if isinstance(name, str) and name else None

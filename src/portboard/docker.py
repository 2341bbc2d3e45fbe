"""Docker CLI collaborator: port mappings, stop, compose down and logs."""

import json
import logging
import os

from . import parsers
from .errors import NotFoundError, PermissionDeniedError, UpstreamToolError, ValidationError
from .models import DockerContainerInfo, LogEntry
from .runner import CommandResult, Runner, best_effort, run_command
from .validation import (
    validate_container_name,
    validate_log_lines,
    validate_project_directory,
    validate_since,
)

logger = logging.getLogger(__name__)

PS_FORMAT = "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.Ports}}"

COMPOSE_FILES = [
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
]

CONFIG_FILES_LABEL = "com.docker.compose.project.config_files"
WORKING_DIR_LABEL = "com.docker.compose.project.working_dir"

DEFAULT_LOG_LINES = 20


def parse_inspect_labels(output: str) -> dict[str, dict[str, str]]:
    """Map short container id (12 chars) -> labels from `docker inspect` JSON."""
    try:
        containers = json.loads(output)
    except ValueError:
        return {}
    labels: dict[str, dict[str, str]] = {}
    if not isinstance(containers, list):
        return labels
    for container in containers:
        if not isinstance(container, dict):
            continue
        container_id = str(container.get("Id", ""))[:12]
        config = container.get("Config") or {}
        labels[container_id] = config.get("Labels") or {}
    return labels


def compose_directory(container: DockerContainerInfo) -> str | None:
    """Project directory of a Compose container.

    The working-dir label wins; otherwise the directory of the first config
    file is used.
    """
    if container.compose_working_dir:
        return container.compose_working_dir
    if container.compose_config_files:
        first = container.compose_config_files.split(",")[0].strip()
        if first:
            return os.path.dirname(first)
    return None


def raise_for_docker(result: CommandResult, action: str) -> None:
    """Translate a failed docker command into the error taxonomy."""
    if result.ok:
        return
    stderr = result.stderr.lower()
    if "no such container" in stderr or "no such object" in stderr:
        raise NotFoundError(f"Container not found: {result.stderr.strip()}")
    if "permission denied" in stderr:
        raise PermissionDeniedError(
            "Permission denied while talking to the Docker daemon"
        )
    raise UpstreamToolError(f"Failed to {action}", result.stderr)


class DockerClient:
    """Thin async wrapper over the docker CLI."""

    def __init__(self, runner: Runner = run_command, timeout: float = 10.0):
        self.runner = runner
        self.timeout = timeout

    async def _run(self, args: list[str], **kwargs) -> CommandResult:
        return await self.runner(args, timeout=self.timeout, **kwargs)

    async def _labels(self, ids: list[str]) -> dict[str, dict[str, str]]:
        result = await self._run(["docker", "inspect", *ids])
        if not result.ok:
            return {}
        return parse_inspect_labels(result.stdout)

    async def _port_mappings(self) -> dict[int, DockerContainerInfo]:
        result = await self._run(["docker", "ps", "--format", PS_FORMAT])
        if not result.ok:
            logger.debug("docker ps failed: %s", result.stderr.strip())
            return {}

        rows = parsers.parse_docker_ps(result.stdout)
        if not rows:
            return {}
        labels = await best_effort(
            self._labels([row[0] for row in rows]), {}, "docker inspect"
        )

        mappings: dict[int, DockerContainerInfo] = {}
        for container_id, name, image, ports in rows:
            container_labels = labels.get(container_id[:12], {})
            for _, host_port, container_port in parsers.parse_docker_ports(ports):
                # First container listed keeps a host port
                if host_port in mappings:
                    continue
                mappings[host_port] = DockerContainerInfo(
                    id=container_id,
                    name=name,
                    image=image,
                    container_port=container_port,
                    compose_config_files=container_labels.get(CONFIG_FILES_LABEL),
                    compose_working_dir=container_labels.get(WORKING_DIR_LABEL),
                )
        return mappings

    async def get_port_mappings(self) -> dict[int, DockerContainerInfo]:
        """Host port -> container for every running container.

        Returns {} when Docker is missing or not running.
        """
        return await best_effort(self._port_mappings(), {}, "docker port mappings")

    async def stop_container(self, name: str) -> None:
        validate_container_name(name)
        result = await self._run(["docker", "stop", name])
        raise_for_docker(result, f"stop container {name}")
        logger.info("Stopped container %s", name)

    async def stop_compose(self, project_directory: str) -> None:
        """Run `docker compose down` in a validated project directory.

        Raises:
            ValidationError: If the path is malformed or has no compose file
            NotFoundError: If the directory does not exist
        """
        directory = validate_project_directory(project_directory)
        if not any((directory / name).is_file() for name in COMPOSE_FILES):
            raise ValidationError(
                f"No compose file found in {directory} (expected one of: "
                f"{', '.join(COMPOSE_FILES)})"
            )
        result = await self._run(["docker", "compose", "down"], cwd=directory)
        raise_for_docker(result, "stop compose project")
        logger.info("Stopped compose project in %s", directory)

    async def get_logs(
        self,
        container_id: str,
        lines: int = DEFAULT_LOG_LINES,
        since: str | None = None,
    ) -> list[LogEntry]:
        """Recent log lines of a container, oldest first.

        Docker writes container stderr to our stderr, so both streams are
        parsed.
        """
        validate_container_name(container_id, "container ID")
        lines = validate_log_lines(lines)
        args = ["docker", "logs", "-n", str(lines), "--timestamps"]
        if since:
            args += ["--since", validate_since(since)]
        args.append(container_id)

        result = await self._run(args)
        raise_for_docker(result, f"fetch logs for {container_id}")
        entries = parsers.parse_docker_logs(result.stdout) + parsers.parse_docker_logs(
            result.stderr
        )
        entries.sort(key=lambda entry: entry.timestamp or "")
        return entries

"""Data model for Portboard."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Category(str, Enum):
    """Classification of a listening process."""

    SYSTEM = "system"
    DEVELOPMENT = "development"
    DATABASE = "database"
    WEB_SERVER = "web-server"
    APPLICATIONS = "applications"
    USER = "user"


class SortKey(str, Enum):
    """Fields the port list can be sorted by."""

    PORT = "port"
    PROCESS_NAME = "processName"
    PID = "pid"
    CONNECTION_STATUS = "connectionStatus"
    CPU_USAGE = "cpuUsage"
    MEMORY_USAGE = "memoryUsage"
    MEMORY_RSS = "memoryRSS"
    CONNECTION_COUNT = "connectionCount"


@dataclass(frozen=True)
class BasicPortInfo:
    """A listening socket as reported by the OS tool."""

    port: int
    pid: int
    process_name: str
    protocol: str  # TCP or UDP
    bind_address: str  # May be "*" for wildcard binds
    user: str | None = None


@dataclass
class ProcessMetadata:
    """Best-effort enrichment for a pid. Any field may be missing."""

    command_path: str | None = None
    cwd: str | None = None
    app_name: str | None = None
    app_icon_path: str | None = None
    cpu_usage: float | None = None  # Percent
    memory_usage: float | None = None  # Percent
    memory_rss: int | None = None  # KB
    process_start_time: datetime | None = None


@dataclass
class DockerContainerInfo:
    """A running container that publishes a host port."""

    id: str
    name: str
    image: str
    container_port: int | None = None
    compose_config_files: str | None = None  # Comma-separated, compose only
    compose_working_dir: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "containerPort": self.container_port,
            "composeConfigFiles": self.compose_config_files,
            "composeWorkingDir": self.compose_working_dir,
        }


@dataclass
class PortInfo:
    """Unified view of one listening (port, pid) pair."""

    port: int
    pid: int
    process_name: str
    protocol: str
    address: str
    category: Category
    connection_count: int = 0
    user: str | None = None
    command_path: str | None = None
    cwd: str | None = None
    app_name: str | None = None
    app_icon_path: str | None = None
    cpu_usage: float | None = None
    memory_usage: float | None = None
    memory_rss: int | None = None
    process_start_time: datetime | None = None
    docker_container: DockerContainerInfo | None = None
    is_self_port: bool = False

    @property
    def connection_status(self) -> str:
        return "active" if self.connection_count > 0 else "idle"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape shared by all surfaces."""
        return {
            "port": self.port,
            "pid": self.pid,
            "processName": self.process_name,
            "protocol": self.protocol,
            "address": self.address,
            "user": self.user,
            "commandPath": self.command_path,
            "cwd": self.cwd,
            "appName": self.app_name,
            "appIconPath": self.app_icon_path,
            "cpuUsage": self.cpu_usage,
            "memoryUsage": self.memory_usage,
            "memoryRSS": self.memory_rss,
            "processStartTime": (
                self.process_start_time.isoformat() if self.process_start_time else None
            ),
            "connectionStatus": self.connection_status,
            "connectionCount": self.connection_count,
            "category": self.category.value,
            "dockerContainer": (
                self.docker_container.to_dict() if self.docker_container else None
            ),
            "isSelfPort": self.is_self_port,
        }


@dataclass
class ApplicationInfo:
    """An IDE or terminal detected on this machine."""

    id: str
    name: str
    command: str  # PATH command or absolute install location
    icon_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "command": self.command,
            "iconPath": self.icon_path,
        }


@dataclass
class LogEntry:
    """One line of container output."""

    timestamp: str | None
    message: str
    level: str  # error, warn or info

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "message": self.message, "level": self.level}


@dataclass
class TerminationResult:
    """Outcome of a kill request."""

    action: str  # killed, container-stopped or compose-stopped
    pid: int
    port: int | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

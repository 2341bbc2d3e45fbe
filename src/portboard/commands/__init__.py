"""Command modules for portboard CLI."""

from .docker import docker_app
from .info import info
from .kill import kill
from .list import list_cmd
from .mcp import mcp_cmd
from .open import open_cmd
from .serve import serve

__all__ = [
    "docker_app",
    "info",
    "kill",
    "list_cmd",
    "mcp_cmd",
    "open_cmd",
    "serve",
]

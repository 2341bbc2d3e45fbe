"""Portboard - listening ports, the processes behind them, and what to do about them."""

__version__ = "0.1.0"

from .classifier import classify
from .context import AppContext, build_context
from .docker import DockerClient
from .errors import (
    NotFoundError,
    PermissionDeniedError,
    PortboardError,
    ProtectedResourceError,
    UnsupportedPlatformError,
    UpstreamToolError,
    ValidationError,
)
from .models import Category, PortInfo, SortKey
from .service import PortService, filter_ports, sort_ports
from .state import ServerState

__all__ = [
    "__version__",
    "AppContext",
    "build_context",
    "Category",
    "classify",
    "DockerClient",
    "filter_ports",
    "NotFoundError",
    "PermissionDeniedError",
    "PortboardError",
    "PortInfo",
    "PortService",
    "ProtectedResourceError",
    "ServerState",
    "SortKey",
    "sort_ports",
    "UnsupportedPlatformError",
    "UpstreamToolError",
    "ValidationError",
]

"""Application context: everything a surface needs, built explicitly."""

from dataclasses import dataclass

from .applications import ApplicationCatalog
from .config import Settings, load_settings
from .docker import DockerClient
from .icons import IconCache
from .platform import PlatformProvider, get_platform_provider
from .runner import Runner, run_command
from .service import PortService
from .state import ServerState


@dataclass
class AppContext:
    """Wiring shared by the HTTP API, CLI and MCP server."""

    settings: Settings
    state: ServerState
    icon_cache: IconCache
    platform: PlatformProvider
    docker: DockerClient
    service: PortService
    applications: ApplicationCatalog


def build_context(
    settings: Settings | None = None,
    runner: Runner = run_command,
    platform: PlatformProvider | None = None,
) -> AppContext:
    """Construct the context for this process.

    Args:
        settings: Defaults to load_settings()
        runner: Subprocess runner handed to every collaborator
        platform: Provider set to use instead of the detected one

    Raises:
        UnsupportedPlatformError: If the OS has no provider
    """
    settings = settings or load_settings()
    state = ServerState(settings.dev_server_port, settings.dev_mode)
    icon_cache = IconCache(settings.icon_cache_dir, settings.icon_size)
    if platform is None:
        platform = get_platform_provider(icon_cache, runner, settings.command_timeout)
    docker = DockerClient(runner, settings.command_timeout)
    return AppContext(
        settings=settings,
        state=state,
        icon_cache=icon_cache,
        platform=platform,
        docker=docker,
        service=PortService(platform, docker, state),
        applications=ApplicationCatalog(platform.applications),
    )

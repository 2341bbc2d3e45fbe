"""Per-OS capability providers, selected once from sys.platform."""

import sys

from ..errors import UnsupportedPlatformError
from ..icons import IconCache
from ..runner import DEFAULT_TIMEOUT, Runner, run_command
from .base import (
    ApplicationProvider,
    BrowserProvider,
    IconProvider,
    PlatformProvider,
    PortProvider,
    ProcessProvider,
)

__all__ = [
    "ApplicationProvider",
    "BrowserProvider",
    "IconProvider",
    "PlatformProvider",
    "PortProvider",
    "ProcessProvider",
    "detect_platform",
    "get_platform_provider",
]


def detect_platform(platform: str | None = None) -> str:
    """Map sys.platform to "macos", "linux" or "windows".

    Raises:
        UnsupportedPlatformError: For any other operating system
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return "macos"
    if platform.startswith("linux"):
        return "linux"
    if platform == "win32":
        return "windows"
    raise UnsupportedPlatformError(f"Unsupported platform: {platform}")


def get_platform_provider(
    icon_cache: IconCache,
    runner: Runner = run_command,
    timeout: float = DEFAULT_TIMEOUT,
    platform: str | None = None,
) -> PlatformProvider:
    """Build the provider set for the running (or given) platform."""
    name = detect_platform(platform)

    if name == "macos":
        from . import macos

        icons = macos.MacIconProvider(icon_cache, runner, timeout)
        return PlatformProvider(
            name=name,
            ports=macos.MacPortProvider(runner, timeout),
            processes=macos.MacProcessProvider(runner, timeout, icons=icons),
            icons=icons,
            applications=macos.MacApplicationProvider(icons=icons),
            browser=macos.MacBrowserProvider(),
        )

    if name == "linux":
        from . import linux
        from .posix import PosixProcessProvider

        icons = linux.LinuxIconProvider(icon_cache, runner, timeout)
        return PlatformProvider(
            name=name,
            ports=linux.LinuxPortProvider(runner, timeout),
            processes=PosixProcessProvider(runner, timeout, icons=icons),
            icons=icons,
            applications=linux.LinuxApplicationProvider(icons=icons),
            browser=linux.LinuxBrowserProvider(),
        )

    from . import windows

    icons = windows.WindowsIconProvider(icon_cache, runner, timeout)
    return PlatformProvider(
        name=name,
        ports=windows.WindowsPortProvider(runner, timeout),
        processes=windows.WindowsProcessProvider(runner, timeout, icons=icons),
        icons=icons,
        applications=windows.WindowsApplicationProvider(icons=icons),
        browser=windows.WindowsBrowserProvider(),
    )

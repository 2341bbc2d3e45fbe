"""Linux providers: lsof with an ss fallback, ps, .desktop icons, xdg-open."""

import logging
import shutil
from pathlib import Path

from .. import parsers
from ..applications import ToolSpec, docker_exec_argv
from ..connections import batch_connection_counts
from ..errors import UpstreamToolError
from ..models import ApplicationInfo, BasicPortInfo
from ..runner import DEFAULT_TIMEOUT, Runner, run_command
from .base import ApplicationProvider, BrowserProvider, IconProvider, PortPid
from .posix import LsofPortProvider

logger = logging.getLogger(__name__)

DESKTOP_DIRS = ("/usr/share/applications", "~/.local/share/applications")
ICON_DIRS = ("/usr/share/icons/hicolor", "~/.local/share/icons/hicolor")
PIXMAP_DIR = "/usr/share/pixmaps"
ICON_SIZES = ("64x64", "48x48", "128x128", "256x256", "32x32", "512x512")


class LinuxPortProvider(LsofPortProvider):
    """lsof when installed, ss otherwise."""

    filter_by_pid = True

    def __init__(
        self,
        runner: Runner = run_command,
        timeout: float = DEFAULT_TIMEOUT,
        which=shutil.which,
    ):
        super().__init__(runner, timeout)
        self.which = which

    @property
    def has_lsof(self) -> bool:
        return self.which("lsof") is not None

    async def list_listening_ports(self) -> list[BasicPortInfo]:
        if self.has_lsof:
            return await super().list_listening_ports()
        result = await self.run(["ss", "-tlnpH"])
        if not result.ok:
            raise UpstreamToolError("Failed to list listening ports", result.stderr)
        return parsers.parse_ss_listening(result.stdout)

    async def _ss_established(self, pids: list[int]) -> str:
        result = await self.run(["ss", "-tnpH", "state", "established"])
        return result.stdout

    async def batch_connection_counts(self, pairs) -> dict[PortPid, int]:
        if self.has_lsof:
            return await super().batch_connection_counts(pairs)
        return await batch_connection_counts(
            self._ss_established, parsers.parse_ss_connections, pairs
        )


class LinuxIconProvider(IconProvider):
    """Finds the PNG named by an application's .desktop file."""

    async def extract_icon(self, app_path: str) -> str | None:
        cached = self.cache.lookup(app_path)
        if cached:
            return cached

        name = Path(app_path).name
        icon = find_desktop_icon(name) or name
        source = find_icon_file(icon)
        if source is None:
            return None
        return self.cache.store_file(app_path, source)


def find_desktop_icon(app_name: str) -> str | None:
    """Read Icon= from <app_name>.desktop in the standard directories."""
    for directory in DESKTOP_DIRS:
        desktop = Path(directory).expanduser() / f"{app_name}.desktop"
        try:
            lines = desktop.read_text(errors="replace").splitlines()
        except OSError:
            continue
        for line in lines:
            if line.startswith("Icon="):
                value = line[len("Icon="):].strip()
                if value:
                    return value
    return None


def find_icon_file(icon: str) -> Path | None:
    """Resolve an icon name or absolute path to a PNG file."""
    if icon.startswith("/"):
        path = Path(icon)
        return path if path.suffix == ".png" and path.is_file() else None

    for base in ICON_DIRS:
        root = Path(base).expanduser()
        for size in ICON_SIZES:
            candidate = root / size / "apps" / f"{icon}.png"
            if candidate.is_file():
                return candidate

    pixmap = Path(PIXMAP_DIR) / f"{icon}.png"
    return pixmap if pixmap.is_file() else None


class LinuxApplicationProvider(ApplicationProvider):
    ide_specs = (
        ToolSpec(
            "vscode", "Visual Studio Code", ("code",), ("/usr/share/code/code", "/snap/bin/code")
        ),
        ToolSpec("cursor", "Cursor", ("cursor",), ("~/Applications/cursor.AppImage",)),
        ToolSpec(
            "idea", "IntelliJ IDEA", ("idea", "intellij-idea-ultimate", "intellij-idea-community")
        ),
        ToolSpec("pycharm", "PyCharm", ("pycharm", "pycharm-professional", "pycharm-community")),
        ToolSpec("webstorm", "WebStorm", ("webstorm",)),
        ToolSpec("phpstorm", "PhpStorm", ("phpstorm",)),
        ToolSpec("goland", "GoLand", ("goland",)),
        ToolSpec("clion", "CLion", ("clion",)),
        ToolSpec("rubymine", "RubyMine", ("rubymine",)),
        ToolSpec("sublime", "Sublime Text", ("subl", "sublime_text")),
        ToolSpec("zed", "Zed", ("zed", "zeditor")),
        ToolSpec("gedit", "gedit", ("gedit",)),
        ToolSpec("kate", "Kate", ("kate",)),
        ToolSpec("geany", "Geany", ("geany",)),
    )

    terminal_specs = (
        ToolSpec("gnome-terminal", "GNOME Terminal", ("gnome-terminal",)),
        ToolSpec("konsole", "Konsole", ("konsole",)),
        ToolSpec("xfce4-terminal", "Xfce Terminal", ("xfce4-terminal",)),
        ToolSpec("mate-terminal", "MATE Terminal", ("mate-terminal",)),
        ToolSpec("tilix", "Tilix", ("tilix",)),
        ToolSpec("terminator", "Terminator", ("terminator",)),
        ToolSpec("alacritty", "Alacritty", ("alacritty",)),
        ToolSpec("kitty", "Kitty", ("kitty",)),
        ToolSpec("ghostty", "Ghostty", ("ghostty",)),
        ToolSpec("xterm", "XTerm", ("xterm",)),
    )

    def terminal_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        if app.id in ("gnome-terminal", "xfce4-terminal", "mate-terminal", "tilix", "ghostty"):
            return [app.command, f"--working-directory={path}"], None
        if app.id == "konsole":
            return [app.command, "--workdir", path], None
        if app.id == "alacritty":
            return [app.command, "--working-directory", path], None
        if app.id == "kitty":
            return [app.command, "--directory", path], None
        return [app.command], path

    def container_shell_argv(self, app: ApplicationInfo, container: str, shell: str) -> list[str]:
        docker = docker_exec_argv(container, shell)
        if app.id == "gnome-terminal":
            return [app.command, "--", *docker]
        if app.id in ("xfce4-terminal", "mate-terminal", "terminator"):
            return [app.command, "-x", *docker]
        if app.id == "kitty":
            return [app.command, *docker]
        return [app.command, "-e", *docker]


class LinuxBrowserProvider(BrowserProvider):
    open_command = ("xdg-open",)

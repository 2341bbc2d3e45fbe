"""macOS providers: lsof, ps, .app bundles, sips and `open`."""

import asyncio
import logging
import plistlib
from pathlib import Path

from .. import parsers
from ..applications import ToolSpec, docker_exec_argv
from ..models import ApplicationInfo, ProcessMetadata
from ..runner import best_effort
from .base import ApplicationProvider, BrowserProvider, IconProvider
from .posix import LsofPortProvider, PosixProcessProvider, package_name

logger = logging.getLogger(__name__)

ICON_CANDIDATES = ("AppIcon.icns", "app.icns", "icon.icns", "Icon.icns")


class MacPortProvider(LsofPortProvider):
    filter_by_pid = False


class MacProcessProvider(PosixProcessProvider):
    """Adds .app bundle names and icons on top of the ps/lsof metadata."""

    async def enrich(self, metadata: dict[int, ProcessMetadata]) -> None:
        bundles: dict[int, str] = {}
        for pid, meta in metadata.items():
            bundle = parsers.app_bundle_of(meta.command_path) if meta.command_path else None
            if bundle:
                bundles[pid] = bundle[0]
                meta.app_name = bundle[1]
            elif meta.cwd:
                meta.app_name = package_name(meta.cwd)

        if not bundles or self.icons is None:
            return

        pids = list(bundles)
        icons = await asyncio.gather(
            *(
                best_effort(self.icons.extract_icon(bundles[pid]), None, f"icon for {bundles[pid]}")
                for pid in pids
            )
        )
        for pid, icon in zip(pids, icons):
            metadata[pid].app_icon_path = icon


class MacIconProvider(IconProvider):
    """Converts a bundle's .icns file to a PNG with sips."""

    async def extract_icon(self, app_path: str) -> str | None:
        bundle = parsers.app_bundle_of(app_path)
        if bundle is None:
            return None
        bundle_path = Path(bundle[0])
        if not bundle_path.exists():
            return None

        cached = self.cache.lookup(str(bundle_path))
        if cached:
            return cached

        icns = find_icns(bundle_path)
        if icns is None:
            return None

        self.cache.ensure_directory()
        target = self.cache.path_for(str(bundle_path))
        result = await self.run(
            [
                "sips",
                "-s",
                "format",
                "png",
                str(icns),
                "--out",
                str(target),
                "--resampleHeightWidthMax",
                str(self.cache.size),
            ]
        )
        if not result.ok or not target.exists():
            logger.debug("sips failed for %s: %s", icns, result.stderr.strip())
            return None
        return self.cache.uri(self.cache.key(str(bundle_path)))


def find_icns(bundle: Path) -> Path | None:
    """Locate the icon file of an .app bundle.

    CFBundleIconFile from Info.plist is tried first, then common names,
    then any .icns in Contents/Resources.
    """
    resources = bundle / "Contents" / "Resources"
    names: list[str] = []
    try:
        with open(bundle / "Contents" / "Info.plist", "rb") as f:
            icon_file = plistlib.load(f).get("CFBundleIconFile")
        if isinstance(icon_file, str) and icon_file:
            names.append(icon_file if icon_file.endswith(".icns") else f"{icon_file}.icns")
    except (OSError, plistlib.InvalidFileException, ValueError):
        pass

    for name in [*names, *ICON_CANDIDATES]:
        if (resources / name).is_file():
            return resources / name

    try:
        return next(iter(sorted(resources.glob("*.icns"))), None)
    except OSError:
        return None


class MacApplicationProvider(ApplicationProvider):
    ide_specs = (
        ToolSpec("cursor", "Cursor", ("cursor",), ("/Applications/Cursor.app",)),
        ToolSpec("vscode", "VS Code", ("code",), ("/Applications/Visual Studio Code.app",)),
        ToolSpec(
            "vscode-insiders",
            "VS Code Insiders",
            ("code-insiders",),
            ("/Applications/Visual Studio Code - Insiders.app",),
        ),
        ToolSpec("webstorm", "WebStorm", ("webstorm",), ("/Applications/WebStorm.app",)),
        ToolSpec("idea", "IntelliJ IDEA", ("idea",), ("/Applications/IntelliJ IDEA*.app",)),
        ToolSpec("phpstorm", "PhpStorm", ("phpstorm",), ("/Applications/PhpStorm.app",)),
        ToolSpec("pycharm", "PyCharm", ("pycharm",), ("/Applications/PyCharm*.app",)),
        ToolSpec("goland", "GoLand", ("goland",), ("/Applications/GoLand.app",)),
        ToolSpec("rider", "Rider", ("rider",), ("/Applications/Rider.app",)),
        ToolSpec("clion", "CLion", ("clion",), ("/Applications/CLion.app",)),
        ToolSpec("rubymine", "RubyMine", ("rubymine",), ("/Applications/RubyMine.app",)),
        ToolSpec("fleet", "Fleet", ("fleet",), ("/Applications/Fleet.app",)),
        ToolSpec("sublime", "Sublime Text", ("subl",), ("/Applications/Sublime Text.app",)),
        ToolSpec("zed", "Zed", ("zed",), ("/Applications/Zed.app",)),
    )

    terminal_specs = (
        ToolSpec("ghostty", "Ghostty", ("ghostty",), ("/Applications/Ghostty.app",)),
        ToolSpec("iterm2", "iTerm2", (), ("/Applications/iTerm.app",)),
        ToolSpec("warp", "Warp", (), ("/Applications/Warp.app",)),
        ToolSpec("alacritty", "Alacritty", ("alacritty",), ("/Applications/Alacritty.app",)),
        ToolSpec("kitty", "Kitty", ("kitty",), ("/Applications/kitty.app",)),
        ToolSpec("hyper", "Hyper", (), ("/Applications/Hyper.app",)),
        ToolSpec(
            "terminal",
            "Terminal",
            (),
            (
                "/System/Applications/Utilities/Terminal.app",
                "/Applications/Utilities/Terminal.app",
            ),
        ),
    )

    # Application names for `open -a`
    app_names = {
        "ghostty": "Ghostty",
        "iterm2": "iTerm",
        "warp": "Warp",
        "alacritty": "Alacritty",
        "kitty": "kitty",
        "hyper": "Hyper",
        "terminal": "Terminal",
    }

    def ide_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        if app.command.endswith(".app"):
            return ["open", "-a", app.command, path], None
        return [app.command, path], None

    def terminal_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        name = self.app_names.get(app.id, app.command)
        if app.id == "ghostty":
            return ["open", "-n", "-a", name, "--args", f"--working-directory={path}"], None
        if app.id == "alacritty":
            return ["open", "-n", "-a", name, "--args", "--working-directory", path], None
        if app.id == "kitty":
            return ["open", "-n", "-a", name, "--args", f"--directory={path}"], None
        return ["open", "-a", name, path], None

    def container_shell_argv(self, app: ApplicationInfo, container: str, shell: str) -> list[str]:
        docker = docker_exec_argv(container, shell)
        name = self.app_names.get(app.id, app.command)
        if app.id in ("ghostty", "alacritty"):
            return ["open", "-n", "-a", name, "--args", "-e", *docker]
        if app.id == "kitty":
            return ["open", "-n", "-a", name, "--args", *docker]
        if app.id == "iterm2":
            script = (
                'tell application "iTerm" to create window with default profile '
                f'command "{" ".join(docker)}"'
            )
            return ["osascript", "-e", script]
        # Terminal.app, and the fallback for terminals without an exec flag
        script = f'tell application "Terminal" to do script "{" ".join(docker)}"'
        return ["osascript", "-e", script, "-e", 'tell application "Terminal" to activate']


class MacBrowserProvider(BrowserProvider):
    open_command = ("open",)

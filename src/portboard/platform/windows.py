"""Windows providers: netstat, PowerShell, tasklist and taskkill."""

import asyncio
import csv
import getpass
import io
import logging

from .. import parsers
from ..applications import ToolSpec, docker_exec_argv
from ..connections import batch_connection_counts
from ..errors import NotFoundError, PermissionDeniedError, UpstreamToolError
from ..models import ApplicationInfo, BasicPortInfo, ProcessMetadata
from ..runner import best_effort
from .base import (
    ApplicationProvider,
    BrowserProvider,
    IconProvider,
    PortPid,
    PortProvider,
    ProcessProvider,
)

logger = logging.getLogger(__name__)

POWERSHELL = ["powershell", "-NoProfile", "-NonInteractive", "-Command"]

PROCESS_NAMES_SCRIPT = (
    "Get-Process | Select-Object Id,ProcessName | ConvertTo-Csv -NoTypeInformation"
)

# Paths are handed over in environment variables, never spliced into the script
ICON_SCRIPT = (
    "Add-Type -AssemblyName System.Drawing; "
    "$icon = [System.Drawing.Icon]::ExtractAssociatedIcon($env:PORTBOARD_ICON_SOURCE); "
    "if ($icon) { $icon.ToBitmap().Save($env:PORTBOARD_ICON_TARGET, "
    "[System.Drawing.Imaging.ImageFormat]::Png); Write-Output 'success' }"
)


def process_details_script(pids: list[int]) -> str:
    condition = " OR ".join(f"ProcessId={int(pid)}" for pid in pids)
    return (
        f'Get-CimInstance Win32_Process -Filter "{condition}" | '
        "Select-Object ProcessId,ExecutablePath,WorkingSetSize,CreationDate | "
        "ConvertTo-Csv -NoTypeInformation"
    )


class WindowsPortProvider(PortProvider):
    """netstat -ano joined with a PowerShell pid -> name map."""

    async def _process_names(self) -> dict[int, str]:
        result = await self.run([*POWERSHELL, PROCESS_NAMES_SCRIPT])
        return parsers.parse_process_csv(result.stdout)

    async def list_listening_ports(self) -> list[BasicPortInfo]:
        names, netstat = await asyncio.gather(
            best_effort(self._process_names(), {}, "process names"),
            self.run(["netstat", "-ano"]),
        )
        if not netstat.ok:
            raise UpstreamToolError("Failed to list listening ports", netstat.stderr)
        return parsers.parse_netstat_listening(netstat.stdout, names)

    async def _established(self, pids: list[int]) -> str:
        result = await self.run(["netstat", "-ano"])
        return result.stdout

    async def batch_connection_counts(self, pairs) -> dict[PortPid, int]:
        return await batch_connection_counts(
            self._established, parsers.parse_netstat_connections, pairs
        )


def parse_tasklist_user(output: str) -> str | None:
    """Pull the "User Name" column out of `tasklist /V /FO CSV /NH`."""
    for row in csv.reader(io.StringIO(output)):
        if len(row) >= 7:
            return row[6]
    return None


class WindowsProcessProvider(ProcessProvider):
    async def _owner(self, pid: int) -> str | None:
        result = await self.run(
            ["tasklist", "/FI", f"PID eq {pid}", "/V", "/FO", "CSV", "/NH"]
        )
        if not result.ok:
            return None
        return parse_tasklist_user(result.stdout)

    @staticmethod
    def _is_current_user(owner: str) -> bool:
        # "DESKTOP-1234\alice" -> "alice"
        return owner.rsplit("\\", 1)[-1].lower() == getpass.getuser().lower()

    async def is_owned_by_current_user(self, pid: int) -> bool:
        try:
            owner = await self._owner(pid)
        except UpstreamToolError as e:
            logger.debug("Ownership check for %d failed: %s", pid, e)
            return False
        return owner is not None and self._is_current_user(owner)

    async def kill_process(self, pid: int) -> None:
        owner = await self._owner(pid)
        if owner is None:
            raise NotFoundError(f"Process {pid} not found")
        if not self._is_current_user(owner):
            raise PermissionDeniedError(
                f"Permission denied: process {pid} is owned by another user"
            )
        result = await self.run(["taskkill", "/PID", str(pid), "/F"])
        if not result.ok:
            stderr = result.stderr.lower()
            if "not found" in stderr:
                raise NotFoundError(f"Process {pid} not found")
            if "access is denied" in stderr:
                raise PermissionDeniedError(f"Permission denied: cannot terminate process {pid}")
            raise UpstreamToolError(f"Failed to kill process {pid}", result.stderr)
        logger.info("Terminated process %d", pid)

    async def _details(self, pids: list[int]) -> dict[int, ProcessMetadata]:
        result = await self.run([*POWERSHELL, process_details_script(pids)])
        return parsers.parse_windows_process_details(result.stdout)

    async def batch_metadata(self, processes: dict[int, str]) -> dict[int, ProcessMetadata]:
        if not processes:
            return {}
        details = await best_effort(self._details(sorted(processes)), {}, "process details")

        if self.icons is not None:
            with_exe = [pid for pid, meta in details.items() if meta.command_path]
            icons = await asyncio.gather(
                *(
                    best_effort(
                        self.icons.extract_icon(details[pid].command_path),
                        None,
                        f"icon for {details[pid].command_path}",
                    )
                    for pid in with_exe
                )
            )
            for pid, icon in zip(with_exe, icons):
                details[pid].app_icon_path = icon

        return details


class WindowsIconProvider(IconProvider):
    """Extracts the associated icon of an .exe with System.Drawing."""

    async def extract_icon(self, app_path: str) -> str | None:
        if not app_path.lower().endswith(".exe"):
            return None
        cached = self.cache.lookup(app_path)
        if cached:
            return cached

        self.cache.ensure_directory()
        target = self.cache.path_for(app_path)
        result = await self.run(
            [*POWERSHELL, ICON_SCRIPT],
            env={"PORTBOARD_ICON_SOURCE": app_path, "PORTBOARD_ICON_TARGET": str(target)},
        )
        if "success" in result.stdout and target.exists():
            return self.cache.uri(self.cache.key(app_path))
        return None


class WindowsApplicationProvider(ApplicationProvider):
    ide_specs = (
        ToolSpec(
            "vscode",
            "Visual Studio Code",
            ("code",),
            (
                "%LOCALAPPDATA%\\Programs\\Microsoft VS Code\\Code.exe",
                "%ProgramFiles%\\Microsoft VS Code\\Code.exe",
            ),
        ),
        ToolSpec(
            "cursor", "Cursor", ("cursor",), ("%LOCALAPPDATA%\\Programs\\Cursor\\Cursor.exe",)
        ),
        ToolSpec(
            "visual-studio",
            "Visual Studio 2022",
            (),
            (
                "%ProgramFiles%\\Microsoft Visual Studio\\2022\\*\\Common7\\IDE\\devenv.exe",
            ),
        ),
        ToolSpec(
            "idea",
            "IntelliJ IDEA",
            ("idea64", "idea"),
            ("%ProgramFiles%\\JetBrains\\IntelliJ IDEA *\\bin\\idea64.exe",),
        ),
        ToolSpec(
            "pycharm",
            "PyCharm",
            ("pycharm64", "pycharm"),
            ("%ProgramFiles%\\JetBrains\\PyCharm *\\bin\\pycharm64.exe",),
        ),
        ToolSpec(
            "webstorm",
            "WebStorm",
            ("webstorm64", "webstorm"),
            ("%ProgramFiles%\\JetBrains\\WebStorm *\\bin\\webstorm64.exe",),
        ),
        ToolSpec(
            "goland",
            "GoLand",
            ("goland64", "goland"),
            ("%ProgramFiles%\\JetBrains\\GoLand *\\bin\\goland64.exe",),
        ),
        ToolSpec(
            "rider",
            "Rider",
            ("rider64", "rider"),
            ("%ProgramFiles%\\JetBrains\\JetBrains Rider *\\bin\\rider64.exe",),
        ),
        ToolSpec(
            "sublime",
            "Sublime Text",
            ("subl",),
            ("%ProgramFiles%\\Sublime Text\\sublime_text.exe",),
        ),
        ToolSpec(
            "notepad-plus-plus",
            "Notepad++",
            ("notepad++",),
            ("%ProgramFiles%\\Notepad++\\notepad++.exe",),
        ),
    )

    terminal_specs = (
        ToolSpec("windows-terminal", "Windows Terminal", ("wt",)),
        ToolSpec("pwsh", "PowerShell 7", ("pwsh",), ("%ProgramFiles%\\PowerShell\\7\\pwsh.exe",)),
        ToolSpec(
            "powershell",
            "Windows PowerShell",
            ("powershell",),
            ("%SystemRoot%\\System32\\WindowsPowerShell\\v1.0\\powershell.exe",),
        ),
        ToolSpec("cmd", "Command Prompt", ("cmd",), ("%SystemRoot%\\System32\\cmd.exe",)),
        ToolSpec("git-bash", "Git Bash", (), ("%ProgramFiles%\\Git\\git-bash.exe",)),
    )

    def terminal_argv(self, app: ApplicationInfo, path: str) -> tuple[list[str], str | None]:
        if app.id == "windows-terminal":
            return [app.command, "-d", path], None
        if app.id in ("pwsh", "powershell"):
            return [app.command, "-NoExit"], path
        if app.id == "cmd":
            return [app.command, "/K"], path
        if app.id == "git-bash":
            return [app.command, f"--cd={path}"], None
        return [app.command], path

    def container_shell_argv(self, app: ApplicationInfo, container: str, shell: str) -> list[str]:
        docker = docker_exec_argv(container, shell)
        if app.id in ("pwsh", "powershell"):
            return [app.command, "-NoExit", "-Command", " ".join(docker)]
        if app.id == "cmd":
            return [app.command, "/K", " ".join(docker)]
        return [app.command, *docker]


class WindowsBrowserProvider(BrowserProvider):
    open_command = ("cmd", "/c", "start", "")

"""Parsers for the output of lsof, ss, ps, netstat, PowerShell and docker.

Every parser is a pure function over text. Lines that do not match the
expected shape are skipped; empty input gives an empty result.
"""

import csv
import io
import re
from datetime import datetime

from .models import BasicPortInfo, LogEntry, ProcessMetadata

# lsof +c 0 escapes non-printable bytes in COMMAND, e.g. "Google\x20Chrome"
_HEX_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")

# ss -p process column: users:(("node",pid=1234,fd=23),("node",pid=1235,fd=23))
_SS_USER = re.compile(r'\("([^"]*)",pid=(\d+)')

# Docker "Ports" column, e.g. "0.0.0.0:5433->5432/tcp, [::]:5433->5432/tcp"
_DOCKER_PORT = re.compile(
    r"(?P<host>\[[0-9a-fA-F:.]*\]|::|\*|\d{1,3}(?:\.\d{1,3}){3})"
    r":(?P<host_port>\d+)->(?P<container_port>\d+)(?:/(?P<proto>[a-z]+))?"
)

# docker logs --timestamps prefix
_DOCKER_LOG_LINE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T[\d:.]+(?:Z|[+-]\d{2}:\d{2}))\s?(.*)$"
)

_APP_BUNDLE = re.compile(r"^(.*?/([^/]+)\.app)(?:/|$)")

_WINDOWS_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%d/%m/%Y %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)


def decode_lsof_escapes(name: str) -> str:
    r"""Decode \xHH escapes in an lsof command name."""
    return _HEX_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), name)


def split_host_port(address: str) -> tuple[str, int] | None:
    """Split "host:port" on the last colon.

    Handles IPv4, bracketed IPv6 and the "*" wildcard. An empty host
    becomes "*".

    Returns:
        (host, port) or None if the port is not an integer
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        return None
    try:
        port = int(port_str)
    except ValueError:
        return None
    return host or "*", port


def _to_int(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None


def _to_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


def parse_lsof_listening(output: str) -> list[BasicPortInfo]:
    """Parse `lsof -i -P -n` output into listening sockets.

    Format: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
    Example: node 1234 user 23u IPv4 0x1234 0t0 TCP 127.0.0.1:3000 (LISTEN)

    Args:
        output: Raw lsof stdout

    Returns:
        Listening sockets in input order
    """
    ports: list[BasicPortInfo] = []

    for line in output.splitlines():
        if "(LISTEN)" not in line:
            continue
        parts = line.split()
        if len(parts) < 10:
            continue

        pid = _to_int(parts[1])
        if pid is None:
            continue

        address = parts[8].removesuffix("(LISTEN)")
        split = split_host_port(address)
        if split is None:
            continue
        bind_address, port = split

        ports.append(
            BasicPortInfo(
                port=port,
                pid=pid,
                process_name=decode_lsof_escapes(parts[0]),
                protocol=parts[7],
                bind_address=bind_address,
                user=parts[2],
            )
        )

    return ports


def parse_lsof_connections(output: str) -> list[tuple[int, int]]:
    """Extract (local_port, pid) for each ESTABLISHED line of lsof output.

    NAME looks like "127.0.0.1:3000->127.0.0.1:51234"; the local endpoint is
    the part before the arrow.
    """
    records: list[tuple[int, int]] = []

    for line in output.splitlines():
        if "ESTABLISHED" not in line:
            continue
        parts = line.split()
        if len(parts) < 9:
            continue

        pid = _to_int(parts[1])
        if pid is None:
            continue

        local = parts[8].split("->")[0]
        split = split_host_port(local)
        if split is None:
            continue
        records.append((split[1], pid))

    return records


def _strip_scope(host: str) -> str:
    # ss prints interface scopes like 127.0.0.53%lo
    return host.split("%", 1)[0] if "%" in host and not host.startswith("[") else host


def parse_ss_listening(output: str) -> list[BasicPortInfo]:
    """Parse `ss -tlnpH` output.

    Example:
        LISTEN 0 4096 127.0.0.1:3000 0.0.0.0:* users:(("node",pid=1234,fd=23))

    Sockets without process information (owned by other users) are skipped.
    """
    ports: list[BasicPortInfo] = []

    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 6 or parts[0] != "LISTEN":
            continue

        split = split_host_port(parts[3])
        if split is None:
            continue
        host, port = split

        for name, pid in _SS_USER.findall(line):
            ports.append(
                BasicPortInfo(
                    port=port,
                    pid=int(pid),
                    process_name=name,
                    protocol="TCP",
                    bind_address=_strip_scope(host),
                )
            )

    return ports


def parse_ss_connections(output: str) -> list[tuple[int, int]]:
    """Parse `ss -tnpH state established` output into (local_port, pid).

    With a state filter ss omits the State column, so the local address is
    the third column; a leading state word is tolerated.
    """
    records: list[tuple[int, int]] = []

    for line in output.splitlines():
        parts = line.split()
        if parts and not parts[0].isdigit():
            parts = parts[1:]
        if len(parts) < 5:
            continue

        split = split_host_port(parts[2])
        if split is None:
            continue

        for _, pid in _SS_USER.findall(line):
            records.append((split[1], int(pid)))

    return records


def parse_netstat_listening(output: str, process_names: dict[int, str]) -> list[BasicPortInfo]:
    """Parse Windows `netstat -ano` rows in LISTENING state.

    Example: TCP    127.0.0.1:3000    0.0.0.0:0    LISTENING    1234

    netstat does not report process names, so they are looked up in
    process_names (pid -> name).
    """
    ports: list[BasicPortInfo] = []

    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[3].upper() != "LISTENING":
            continue

        pid = _to_int(parts[4])
        split = split_host_port(parts[1])
        if pid is None or split is None:
            continue
        bind_address, port = split

        ports.append(
            BasicPortInfo(
                port=port,
                pid=pid,
                process_name=process_names.get(pid, "unknown"),
                protocol=parts[0].upper(),
                bind_address=bind_address,
            )
        )

    return ports


def parse_netstat_connections(output: str) -> list[tuple[int, int]]:
    """Extract (local_port, pid) from ESTABLISHED rows of `netstat -ano`."""
    records: list[tuple[int, int]] = []

    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[3].upper() != "ESTABLISHED":
            continue

        pid = _to_int(parts[4])
        split = split_host_port(parts[1])
        if pid is None or split is None:
            continue
        records.append((split[1], pid))

    return records


def _csv_rows(output: str) -> list[dict[str, str]]:
    lines = [line for line in output.splitlines() if line and not line.startswith("#")]
    return list(csv.DictReader(io.StringIO("\n".join(lines))))


def parse_process_csv(output: str) -> dict[int, str]:
    """Parse `Get-Process | Select-Object Id,ProcessName | ConvertTo-Csv`."""
    names: dict[int, str] = {}
    for row in _csv_rows(output):
        pid = _to_int(row.get("Id") or "")
        name = row.get("ProcessName")
        if pid is not None and name:
            names[pid] = name
    return names


def _parse_windows_date(value: str) -> datetime | None:
    value = value.strip()
    if not value:
        return None
    for fmt in _WINDOWS_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def parse_windows_process_details(output: str) -> dict[int, ProcessMetadata]:
    """Parse `Get-CimInstance Win32_Process` CSV output.

    Columns: ProcessId, ExecutablePath, WorkingSetSize (bytes), CreationDate.
    CPU and memory percentages are not derivable from a single sample and
    are left unset.
    """
    details: dict[int, ProcessMetadata] = {}

    for row in _csv_rows(output):
        pid = _to_int(row.get("ProcessId") or "")
        if pid is None:
            continue

        working_set = _to_int(row.get("WorkingSetSize") or "")
        details[pid] = ProcessMetadata(
            command_path=row.get("ExecutablePath") or None,
            memory_rss=working_set // 1024 if working_set else None,
            process_start_time=_parse_windows_date(row.get("CreationDate") or ""),
        )

    return details


def parse_ps_resources(output: str) -> dict[int, tuple[float, float, int]]:
    """Parse `ps -o pid=,%cpu=,%mem=,rss=` into pid -> (cpu%, mem%, rss KB)."""
    usage: dict[int, tuple[float, float, int]] = {}

    for line in output.splitlines():
        values = line.split()
        if len(values) < 4:
            continue
        pid = _to_int(values[0])
        if pid is None:
            continue
        usage[pid] = (
            _to_float(values[1]) or 0.0,
            _to_float(values[2]) or 0.0,
            _to_int(values[3]) or 0,
        )

    return usage


def parse_ps_start_times(output: str) -> dict[int, datetime]:
    """Parse `ps -o pid=,lstart=` (C locale), e.g. "1234 Sat Oct 17 09:15:03 2026"."""
    starts: dict[int, datetime] = {}

    for line in output.splitlines():
        pid_str, _, rest = line.strip().partition(" ")
        pid = _to_int(pid_str)
        if pid is None or not rest.strip():
            continue
        try:
            starts[pid] = datetime.strptime(" ".join(rest.split()), "%a %b %d %H:%M:%S %Y")
        except ValueError:
            continue

    return starts


def executable_from_command(command: str) -> str:
    """Pick the file path out of a full command line.

    Returns the first argument that contains "/" and is not an option, or
    the first token when none does.
    """
    parts = command.split()
    if not parts:
        return command
    for part in parts:
        if "/" in part and not part.startswith("-"):
            return part
    return parts[0]


def parse_ps_commands(output: str) -> dict[int, str]:
    """Parse `ps -o pid=,command=` into pid -> executable path."""
    commands: dict[int, str] = {}

    for line in output.splitlines():
        pid_str, _, command = line.strip().partition(" ")
        pid = _to_int(pid_str)
        command = command.strip()
        if pid is None or not command:
            continue
        commands[pid] = executable_from_command(command)

    return commands


def parse_lsof_fields(output: str) -> dict[int, dict[str, str]]:
    """Parse `lsof -a -d cwd,txt -Fpfn` field output.

    Lines are prefixed by a field letter: p<pid>, f<fd>, n<name>.

    Returns:
        pid -> {"cwd": path, "txt": path}; either key may be missing. A cwd
        of "/" is dropped. For txt, a path inside an .app bundle wins over a
        plain path, otherwise the first absolute path is kept.
    """
    result: dict[int, dict[str, str]] = {}
    current: dict[str, str] | None = None
    fd: str | None = None

    for line in output.splitlines():
        if not line:
            continue
        tag, value = line[0], line[1:]

        if tag == "p":
            pid = _to_int(value)
            current = result.setdefault(pid, {}) if pid is not None else None
            fd = None
        elif tag == "f":
            fd = value
        elif tag == "n" and current is not None and fd in ("cwd", "txt"):
            if fd == "cwd":
                if value != "/" and "cwd" not in current:
                    current["cwd"] = value
            elif value.startswith("/"):
                existing = current.get("txt")
                if existing is None or (".app/" in value and ".app/" not in existing):
                    current["txt"] = value
            fd = None

    return result


def app_bundle_of(path: str) -> tuple[str, str] | None:
    """Find the outermost .app bundle in a path.

    Returns:
        (bundle_path, app_name), e.g. ("/Applications/Cursor.app", "Cursor")
    """
    match = _APP_BUNDLE.match(path)
    if not match:
        return None
    return match.group(1), match.group(2)


def parse_docker_ports(ports: str) -> list[tuple[str, int, int]]:
    """Extract (host, host_port, container_port) from docker's Ports column.

    Supported host forms: IPv4, bracketed IPv6, bare "::" and "*".
    Unpublished ports ("5432/tcp") and ranges are ignored.
    """
    return [
        (m.group("host"), int(m.group("host_port")), int(m.group("container_port")))
        for m in _DOCKER_PORT.finditer(ports)
    ]


def parse_docker_ps(output: str) -> list[tuple[str, str, str, str]]:
    """Parse `docker ps --format "{{.ID}}\\t{{.Names}}\\t{{.Image}}\\t{{.Ports}}"`."""
    rows: list[tuple[str, str, str, str]] = []

    for line in output.splitlines():
        fields = line.split("\t")
        if len(fields) < 3 or not fields[0].strip():
            continue
        ports = fields[3] if len(fields) > 3 else ""
        rows.append((fields[0].strip(), fields[1].strip(), fields[2].strip(), ports))

    return rows


def detect_log_level(message: str) -> str:
    """Guess a log level from message text."""
    lower = message.lower()
    if "error" in lower or "fatal" in lower or "exception" in lower:
        return "error"
    if "warn" in lower or "deprecated" in lower:
        return "warn"
    return "info"


def parse_docker_logs(output: str) -> list[LogEntry]:
    """Parse `docker logs --timestamps` output.

    Example: 2025-01-09T12:34:56.789012345Z Server started
    """
    entries: list[LogEntry] = []

    for line in output.splitlines():
        if not line.strip():
            continue
        match = _DOCKER_LOG_LINE.match(line)
        if match:
            timestamp, message = match.group(1), match.group(2)
        else:
            timestamp, message = None, line
        entries.append(
            LogEntry(timestamp=timestamp, message=message, level=detect_log_level(message))
        )

    return entries

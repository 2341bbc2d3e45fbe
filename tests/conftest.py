"""Test fixtures and configuration."""

import tempfile
from pathlib import Path

import pytest

from portboard.config import Settings
from portboard.context import build_context
from portboard.models import ApplicationInfo, BasicPortInfo
from portboard.platform import (
    ApplicationProvider,
    BrowserProvider,
    IconProvider,
    PlatformProvider,
    PortProvider,
    ProcessProvider,
)
from portboard.runner import CommandResult


class FakeRunner:
    """Stands in for run_command: canned results keyed by the exact argv."""

    def __init__(self):
        self.responses: dict[tuple[str, ...], CommandResult | Exception] = {}
        self.calls: list[dict] = []

    def add(self, args, stdout="", returncode=0, stderr=""):
        self.responses[tuple(args)] = CommandResult(list(args), returncode, stdout, stderr)

    def fail(self, args, error):
        self.responses[tuple(args)] = error

    def commands(self) -> list[list[str]]:
        return [call["args"] for call in self.calls]

    async def __call__(self, args, timeout=10.0, check=False, cwd=None, env=None):
        args = [str(a) for a in args]
        self.calls.append({"args": args, "cwd": cwd, "env": env})
        response = self.responses.get(tuple(args))
        if isinstance(response, Exception):
            raise response
        if response is None:
            return CommandResult(args, 1, "", f"{args[0]}: no canned output")
        return response


class FakePortProvider(PortProvider):
    def __init__(self, ports=(), counts=None, error=None):
        super().__init__()
        self.ports = list(ports)
        self.counts = counts or {}
        self.error = error
        self.count_requests: list[list[tuple[int, int]]] = []

    async def list_listening_ports(self):
        if self.error is not None:
            raise self.error
        return list(self.ports)

    async def batch_connection_counts(self, pairs):
        pairs = list(pairs)
        self.count_requests.append(pairs)
        return {pair: self.counts.get(pair, 0) for pair in pairs}


class FakeProcessProvider(ProcessProvider):
    def __init__(self, metadata=None, kill_error=None):
        super().__init__()
        self.metadata = metadata or {}
        self.kill_error = kill_error
        self.killed: list[int] = []

    async def kill_process(self, pid):
        if self.kill_error is not None:
            raise self.kill_error
        self.killed.append(pid)

    async def batch_metadata(self, processes):
        return {pid: self.metadata[pid] for pid in processes if pid in self.metadata}


class FakeApplicationProvider(ApplicationProvider):
    def __init__(self, ides=(), terminals=()):
        super().__init__()
        self.ides = list(ides)
        self.terminals = list(terminals)
        self.detections = 0
        self.opened: list[tuple] = []

    async def detect_ides(self):
        self.detections += 1
        return list(self.ides)

    async def detect_terminals(self):
        self.detections += 1
        return list(self.terminals)

    def open_in_ide(self, app, path):
        self.opened.append(("ide", app.id, path))

    def open_in_terminal(self, app, path):
        self.opened.append(("terminal", app.id, path))

    def open_container_shell(self, app, container, shell="sh"):
        self.opened.append(("shell", app.id, container, shell))


class FakeBrowserProvider(BrowserProvider):
    open_command = ("open",)

    def __init__(self, address="192.168.1.20"):
        self.spawned: list[list[str]] = []
        super().__init__(spawn=lambda argv, cwd=None: self.spawned.append(list(argv)))
        self.address = address

    def local_ip_address(self):
        return self.address


def listening(port, pid, name="node", address="127.0.0.1"):
    """A BasicPortInfo as a port provider would report it."""
    return BasicPortInfo(
        port=port, pid=pid, process_name=name, protocol="TCP", bind_address=address, user="dev"
    )


@pytest.fixture
def temp_dir():
    """Temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_runner():
    """Recording subprocess runner with no canned output."""
    return FakeRunner()


@pytest.fixture
def make_context(temp_dir, fake_runner):
    """Factory for an AppContext wired to fake providers.

    Docker goes through the real DockerClient on top of fake_runner, so
    tests register `docker ...` output on the runner.
    """

    def factory(
        ports=(),
        counts=None,
        metadata=None,
        list_error=None,
        kill_error=None,
        ides=(),
        terminals=(),
        address="192.168.1.20",
        **settings,
    ):
        platform = PlatformProvider(
            name="test",
            ports=FakePortProvider(ports, counts, list_error),
            processes=FakeProcessProvider(metadata, kill_error),
            icons=IconProvider(None),
            applications=FakeApplicationProvider(ides, terminals),
            browser=FakeBrowserProvider(address),
        )
        settings.setdefault("icon_cache_dir", temp_dir / "icons")
        return build_context(Settings(**settings), runner=fake_runner, platform=platform)

    return factory


@pytest.fixture
def vscode():
    return ApplicationInfo(id="vscode", name="Visual Studio Code", command="code")


@pytest.fixture
def iterm():
    return ApplicationInfo(id="iterm", name="iTerm", command="/Applications/iTerm.app")

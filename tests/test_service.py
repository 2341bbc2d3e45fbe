"""Tests for service module."""

import asyncio
from datetime import datetime

import pytest
from conftest import listening

from portboard.errors import (
    NotFoundError,
    PermissionDeniedError,
    ProtectedResourceError,
    UpstreamToolError,
    ValidationError,
)
from portboard.models import Category, ProcessMetadata
from portboard.platform import PortProvider, ProcessProvider
from portboard.platform.linux import LinuxPortProvider
from portboard.platform.macos import MacPortProvider
from portboard.platform.posix import LSOF_LISTEN
from portboard.service import filter_ports, is_docker_engine, scheme_for, sort_ports

DOCKER_PS = ["docker", "ps", "--format", "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.Ports}}"]


def add_container(fake_runner, labels=None):
    """Register one running postgres container publishing 5433."""
    fake_runner.add(
        DOCKER_PS, "abc123def4567890\tmy-postgres\tpostgres:15\t0.0.0.0:5433->5432/tcp\n"
    )
    inspect = (
        '[{"Id": "abc123def4567890", "Config": {"Labels": %s}}]'
        % ("{}" if labels is None else labels)
    )
    fake_runner.add(["docker", "inspect", "abc123def4567890"], inspect)


def test_list_ports_empty(make_context):
    """Test that an empty listing short-circuits to an empty result."""
    ctx = make_context(ports=[])

    assert asyncio.run(ctx.service.list_ports()) == []
    assert ctx.platform.ports.count_requests == []


def test_list_ports_dedupes_and_sorts(make_context):
    """Test that (port, pid) is unique and entries are sorted by port."""
    ctx = make_context(
        ports=[
            listening(8080, 20, "python3"),
            listening(3000, 10, "node", "127.0.0.1"),
            listening(3000, 10, "node", "[::1]"),
            listening(3000, 11, "node"),
        ]
    )

    ports = asyncio.run(ctx.service.list_ports())

    assert [(p.port, p.pid) for p in ports] == [(3000, 10), (3000, 11), (8080, 20)]
    # First occurrence wins
    assert ports[0].address == "127.0.0.1"


def test_list_ports_connection_status(make_context):
    """Test that connections mark a port active and leave others idle."""
    ctx = make_context(
        ports=[listening(3000, 1234, "node"), listening(5432, 77, "postgres")],
        counts={(3000, 1234): 1},
    )

    ports = asyncio.run(ctx.service.list_ports())
    by_port = {p.port: p for p in ports}

    assert by_port[3000].connection_count == 1
    assert by_port[3000].connection_status == "active"
    assert by_port[5432].connection_count == 0
    assert by_port[5432].connection_status == "idle"
    assert by_port[5432].category == Category.DATABASE


def test_list_ports_merges_metadata(make_context):
    """Test that process metadata is attached per pid."""
    started = datetime(2026, 10, 17, 9, 0, 0)
    ctx = make_context(
        ports=[listening(3000, 1234, "node")],
        metadata={
            1234: ProcessMetadata(
                command_path="/usr/local/bin/node",
                cwd="/Users/dev/shop",
                app_name="shop-frontend",
                cpu_usage=3.5,
                memory_usage=1.1,
                memory_rss=204800,
                process_start_time=started,
            )
        },
    )

    (entry,) = asyncio.run(ctx.service.list_ports())

    assert entry.app_name == "shop-frontend"
    assert entry.cwd == "/Users/dev/shop"
    assert entry.memory_rss == 204800
    assert entry.process_start_time == started
    assert entry.category == Category.USER
    data = entry.to_dict()
    assert data["processStartTime"] == "2026-10-17T09:00:00"
    assert data["connectionStatus"] == "idle"
    assert data["dockerContainer"] is None


LSOF_LISTENING = (
    "COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME\n"
    "node 1234 alice 23u IPv4 0x1 0t0 TCP 127.0.0.1:3000 (LISTEN)\n"
    "node 1234 alice 24u IPv6 0x2 0t0 TCP [::1]:3000 (LISTEN)\n"
)

LSOF_ESTABLISHED = (
    "COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME\n"
    "node 1234 alice 30u IPv4 0x3 0t0 TCP 127.0.0.1:3000->127.0.0.1:51000 (ESTABLISHED)\n"
)


@pytest.mark.parametrize(
    "provider, established",
    [
        (lambda runner: MacPortProvider(runner), ["lsof", "-P", "-n", "-i"]),
        (
            lambda runner: LinuxPortProvider(runner, which=lambda cmd: f"/usr/bin/{cmd}"),
            ["lsof", "-P", "-n", "-i", "-a", "-p", "1234"],
        ),
    ],
)
def test_list_ports_from_raw_lsof(make_context, fake_runner, provider, established):
    """Test raw lsof listing and connection dumps through to one active entry."""
    fake_runner.add(LSOF_LISTEN, LSOF_LISTENING)
    fake_runner.add(established, LSOF_ESTABLISHED)
    ctx = make_context()
    ctx.platform.ports = provider(fake_runner)

    ports = asyncio.run(ctx.service.list_ports())

    assert len(ports) == 1
    entry = ports[0]
    assert (entry.port, entry.pid, entry.process_name) == (3000, 1234, "node")
    assert entry.connection_count == 1
    assert entry.to_dict()["connectionStatus"] == "active"


class HandshakePorts(PortProvider):
    """Each stage blocks until its sibling in the same gather has started."""

    def __init__(self, events):
        super().__init__()
        self.events = events

    async def list_listening_ports(self):
        self.events["listed"].set()
        await self.events["mapped"].wait()
        return [listening(3000, 1234)]

    async def batch_connection_counts(self, pairs):
        self.events["counted"].set()
        await self.events["described"].wait()
        return {pair: 1 for pair in pairs}


class HandshakeProcesses(ProcessProvider):
    def __init__(self, events):
        super().__init__()
        self.events = events

    async def batch_metadata(self, processes):
        self.events["described"].set()
        await self.events["counted"].wait()
        return {pid: ProcessMetadata(cwd="/srv/shop") for pid in processes}


def test_list_ports_runs_each_stage_concurrently(make_context):
    """Test that docker/listing and counts/metadata overlap instead of running in turn."""
    ctx = make_context()

    async def scenario():
        events = {name: asyncio.Event() for name in ("listed", "mapped", "counted", "described")}

        async def port_mappings():
            events["mapped"].set()
            await events["listed"].wait()
            return {}

        ctx.docker.get_port_mappings = port_mappings
        ctx.platform.ports = HandshakePorts(events)
        ctx.platform.processes = HandshakeProcesses(events)
        return await asyncio.wait_for(ctx.service.list_ports(), timeout=5)

    ports = asyncio.run(scenario())

    assert [(p.port, p.connection_count, p.cwd) for p in ports] == [(3000, 1, "/srv/shop")]


def test_list_ports_listing_failure_propagates(make_context):
    """Test that a failed port listing is an error, not an empty list."""
    ctx = make_context(list_error=UpstreamToolError("lsof: command not found"))

    with pytest.raises(UpstreamToolError):
        asyncio.run(ctx.service.list_ports())


def test_self_ports_are_marked(make_context):
    """Test self-port detection for the API and dev server ports."""
    ctx = make_context(
        ports=[listening(3033, 500, "python3"), listening(3000, 501, "node")], dev_mode=True
    )
    ctx.state.set_server_port(3033)

    ports = asyncio.run(ctx.service.list_ports())

    assert [p.is_self_port for p in ports] == [True, True]


def test_docker_container_attached_to_engine_only(make_context, fake_runner):
    """Test that container info only attaches to Docker's forwarder."""
    add_container(fake_runner)
    ctx = make_context(
        ports=[listening(5433, 900, "com.docker.backend"), listening(5432, 77, "postgres")]
    )

    ports = asyncio.run(ctx.service.list_ports())
    by_port = {p.port: p for p in ports}

    container = by_port[5433].docker_container
    assert container is not None
    assert container.name == "my-postgres"
    assert container.container_port == 5432
    assert by_port[5433].app_name == "my-postgres"
    assert by_port[5433].category == Category.DATABASE
    assert by_port[5432].docker_container is None


def test_docker_failure_degrades(make_context):
    """Test that a missing docker binary leaves ports without containers."""
    ctx = make_context(ports=[listening(5433, 900, "com.docker.backend")])

    (entry,) = asyncio.run(ctx.service.list_ports())

    assert entry.docker_container is None


def test_terminate_kills_plain_process(make_context):
    """Test terminating an ordinary process."""
    ctx = make_context(ports=[listening(3000, 1234, "node")])

    result = asyncio.run(ctx.service.terminate(1234))

    assert result.action == "killed"
    assert result.port == 3000
    assert ctx.platform.processes.killed == [1234]


def test_terminate_protects_self_port(make_context):
    """Test that Portboard's own port needs force."""
    ctx = make_context(ports=[listening(3033, 500, "python3")])
    ctx.state.set_server_port(3033)

    with pytest.raises(ProtectedResourceError):
        asyncio.run(ctx.service.terminate(500))
    assert ctx.platform.processes.killed == []

    result = asyncio.run(ctx.service.terminate(500, force=True))
    assert result.action == "killed"
    assert ctx.platform.processes.killed == [500]


def test_terminate_stops_container(make_context, fake_runner):
    """Test that a plain container is stopped instead of killing Docker."""
    add_container(fake_runner)
    fake_runner.add(["docker", "stop", "my-postgres"], "my-postgres\n")
    ctx = make_context(ports=[listening(5433, 900, "com.docker.backend")])

    result = asyncio.run(ctx.service.terminate(900))

    assert result.action == "container-stopped"
    assert ["docker", "stop", "my-postgres"] in fake_runner.commands()
    assert ctx.platform.processes.killed == []


def test_terminate_brings_down_compose_project(make_context, fake_runner, temp_dir):
    """Test that a Compose container brings down its whole project."""
    project = temp_dir / "shop"
    project.mkdir()
    (project / "compose.yaml").write_text("services: {}\n")
    add_container(
        fake_runner, labels='{"com.docker.compose.project.working_dir": "%s"}' % project
    )
    fake_runner.add(["docker", "compose", "down"])
    ctx = make_context(ports=[listening(5433, 900, "com.docker.backend")])

    result = asyncio.run(ctx.service.terminate(900))

    assert result.action == "compose-stopped"
    down = next(
        call for call in fake_runner.calls if call["args"][:3] == ["docker", "compose", "down"]
    )
    assert str(down["cwd"]) == str(project)
    assert ctx.platform.processes.killed == []


def test_terminate_maps_kill_errors(make_context):
    """Test that provider errors surface unchanged."""
    ctx = make_context(
        ports=[listening(22, 1, "sshd")], kill_error=PermissionDeniedError("not yours")
    )

    with pytest.raises(PermissionDeniedError):
        asyncio.run(ctx.service.terminate(1))


def test_resolve_target_prefers_port(make_context):
    """Test that a port match wins and ambiguity is reported."""
    ctx = make_context(ports=[listening(3000, 5000, "node"), listening(5000, 3000, "python3")])

    entry, ambiguous = asyncio.run(ctx.service.resolve_target(3000))
    assert (entry.port, entry.pid) == (3000, 5000)
    assert ambiguous

    entry, ambiguous = asyncio.run(ctx.service.resolve_target(5000))
    assert entry.port == 5000
    assert ambiguous

    entry, ambiguous = asyncio.run(ctx.service.resolve_target(1234))
    assert entry is None
    assert not ambiguous


def test_resolve_target_by_pid(make_context):
    """Test falling back to a pid match."""
    ctx = make_context(ports=[listening(3000, 4242, "node")])

    entry, ambiguous = asyncio.run(ctx.service.resolve_target(4242))

    assert entry.port == 3000
    assert not ambiguous


def test_stop_docker_with_compose_needs_project(make_context, fake_runner):
    """Test that --compose on a standalone container is rejected."""
    add_container(fake_runner)
    ctx = make_context(ports=[listening(5433, 900, "com.docker.backend")])

    with pytest.raises(ValidationError):
        asyncio.run(ctx.service.stop_docker("my-postgres", use_compose=True))
    with pytest.raises(NotFoundError):
        asyncio.run(ctx.service.stop_docker("nope", use_compose=True))


def test_filter_ports(make_context):
    """Test filtering by category and search term."""
    ctx = make_context(
        ports=[
            listening(3000, 1, "node"),
            listening(5432, 2, "postgres"),
            listening(6379, 3, "redis-server"),
        ]
    )
    ports = asyncio.run(ctx.service.list_ports())

    assert [p.port for p in filter_ports(ports, category="database")] == [5432, 6379]
    assert [p.port for p in filter_ports(ports, search="NODE")] == [3000]
    assert [p.port for p in filter_ports(ports, search="63")] == [6379]
    assert [p.port for p in filter_ports(ports, category="database", search="redis")] == [6379]
    with pytest.raises(ValidationError):
        filter_ports(ports, category="games")


def test_sort_ports(make_context):
    """Test sorting with missing values last."""
    ctx = make_context(
        ports=[listening(3000, 30, "b"), listening(4000, 10, "a"), listening(5000, 20, "c")],
        metadata={10: ProcessMetadata(memory_rss=500), 30: ProcessMetadata(memory_rss=100)},
        counts={(5000, 20): 3},
    )
    ports = asyncio.run(ctx.service.list_ports())

    assert [p.pid for p in sort_ports(ports, "pid")] == [10, 20, 30]
    assert [p.process_name for p in sort_ports(ports, "processName")] == ["a", "b", "c"]
    assert [p.pid for p in sort_ports(ports, "memoryRSS")] == [30, 10, 20]
    assert [p.port for p in sort_ports(ports, "connectionStatus")] == [5000, 3000, 4000]
    with pytest.raises(ValidationError):
        sort_ports(ports, "color")


def test_is_docker_engine():
    """Test Docker forwarder process names."""
    assert is_docker_engine("com.docker.backend")
    assert is_docker_engine("vpnkit-bridge")
    assert is_docker_engine("dockerd")
    assert is_docker_engine("rootlessport")
    assert not is_docker_engine("node")


def test_urls(make_context):
    """Test localhost and network URLs."""
    ctx = make_context()

    assert ctx.service.localhost_url(3000) == "http://localhost:3000"
    assert ctx.service.network_url(443) == "https://192.168.1.20:443"
    assert scheme_for(8443) == "http"

    offline = make_context(address=None)
    assert offline.service.network_url(3000) is None

"""Tests for the command-line interface."""

import asyncio
import json
import socket
from datetime import datetime, timedelta, timezone

import pytest
from conftest import listening
from typer.testing import CliRunner

from portboard import __version__
from portboard.cli import app
from portboard.commands.common import format_cpu, format_memory, format_uptime
from portboard.commands.serve import _serve, find_available_port
from portboard.errors import UpstreamToolError
from portboard.models import ProcessMetadata
from portboard.platform.linux import LinuxBrowserProvider

runner = CliRunner()


@pytest.fixture
def use_context(make_context, monkeypatch):
    """Make every command run against a fake context."""

    def factory(**kwargs):
        ctx = make_context(**kwargs)
        monkeypatch.setattr("portboard.commands.common.build_context", lambda: ctx)
        return ctx

    return factory


def test_version():
    """Test --version."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"portboard version {__version__}" in result.output


def test_list_json(use_context):
    """Test list --json with filters and sorting."""
    use_context(
        ports=[
            listening(5432, 77, "postgres"),
            listening(3000, 1234, "node"),
            listening(8080, 99, "node"),
        ],
        metadata={
            1234: ProcessMetadata(memory_rss=90000),
            99: ProcessMetadata(memory_rss=1000),
        },
    )

    result = runner.invoke(app, ["list", "-s", "node", "--sort", "memoryRSS", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [entry["port"] for entry in data] == [8080, 3000]


def test_list_table(use_context):
    """Test the table output."""
    use_context(ports=[listening(3000, 1234, "node")])

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "Listening Ports" in result.output
    assert "3000" in result.output
    assert "1 port(s)" in result.output


def test_list_empty(use_context):
    """Test the message when nothing listens."""
    use_context()

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "No listening ports found" in result.output


def test_list_bad_category(use_context):
    """Test that an unknown category exits with an error."""
    use_context(ports=[listening(3000, 1234)])

    result = runner.invoke(app, ["list", "--category", "games"])

    assert result.exit_code == 1
    assert "Invalid category" in result.output


def test_list_failure(use_context):
    """Test that a failed listing is reported."""
    use_context(list_error=UpstreamToolError("lsof timed out"))

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 1
    assert "lsof timed out" in result.output


def test_info(use_context):
    """Test info for a listening port."""
    use_context(
        ports=[listening(3000, 1234, "node")],
        metadata={1234: ProcessMetadata(command_path="/usr/bin/node", cwd="/srv/shop")},
    )

    result = runner.invoke(app, ["info", "3000"])
    as_json = runner.invoke(app, ["info", "3000", "--json"])

    assert result.exit_code == 0
    assert "Port 3000" in result.output
    assert "/srv/shop" in result.output
    assert json.loads(as_json.stdout)["commandPath"] == "/usr/bin/node"


def test_info_not_found(use_context):
    """Test info for a port nobody listens on."""
    use_context(ports=[listening(3000, 1234)])

    result = runner.invoke(app, ["info", "4000"])
    invalid = runner.invoke(app, ["info", "http"])

    assert result.exit_code == 1
    assert "No process listening on port 4000" in result.output
    assert invalid.exit_code == 1


def test_kill_with_yes(use_context):
    """Test killing by port without a prompt."""
    ctx = use_context(ports=[listening(3000, 1234, "node")])

    result = runner.invoke(app, ["kill", "3000", "--yes"])

    assert result.exit_code == 0
    assert "Killed process 1234" in result.output
    assert ctx.platform.processes.killed == [1234]


def test_kill_by_pid_after_confirmation(use_context):
    """Test killing by pid after answering the prompt."""
    ctx = use_context(ports=[listening(3000, 1234, "node")])

    result = runner.invoke(app, ["kill", "1234"], input="y\n")

    assert result.exit_code == 0
    assert "About to kill" in result.output
    assert ctx.platform.processes.killed == [1234]


def test_kill_cancelled(use_context):
    """Test that declining the prompt kills nothing."""
    ctx = use_context(ports=[listening(3000, 1234, "node")])

    result = runner.invoke(app, ["kill", "3000"], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert ctx.platform.processes.killed == []


def test_kill_ambiguous_prefers_port(use_context):
    """Test that a number matching a port and a pid targets the port."""
    ctx = use_context(ports=[listening(3000, 1234, "node"), listening(8080, 3000, "java")])

    result = runner.invoke(app, ["kill", "3000", "--yes"])

    assert result.exit_code == 0
    assert "Ambiguous target" in result.output
    assert ctx.platform.processes.killed == [1234]


def test_kill_self_port_needs_force(use_context):
    """Test that Portboard's own port needs --force."""
    ctx = use_context(ports=[listening(3000, 1234, "node")], dev_mode=True)

    refused = runner.invoke(app, ["kill", "3000", "--yes"])
    forced = runner.invoke(app, ["kill", "3000", "--force"])

    assert refused.exit_code == 1
    assert "Cannot kill the Portboard server itself" in refused.output
    assert forced.exit_code == 0
    assert ctx.platform.processes.killed == [1234]


def test_kill_invalid_and_missing(use_context):
    """Test non-numeric targets and unknown ports."""
    ctx = use_context(ports=[listening(3000, 1234)])

    invalid = runner.invoke(app, ["kill", "abc", "--yes"])
    missing = runner.invoke(app, ["kill", "4000", "--yes"])

    assert invalid.exit_code == 1
    assert missing.exit_code == 1
    assert "No process found for port/PID 4000" in missing.output
    assert ctx.platform.processes.killed == []


def test_docker_ls_empty(use_context):
    """Test docker ls when no container publishes ports."""
    use_context(ports=[listening(3000, 1234, "node")])

    result = runner.invoke(app, ["docker", "ls"])

    assert result.exit_code == 0
    assert "No Docker containers publishing ports" in result.output


def test_docker_stop(use_context, fake_runner):
    """Test stopping a container."""
    fake_runner.add(["docker", "stop", "my-postgres"], "my-postgres\n")
    use_context()

    result = runner.invoke(app, ["docker", "stop", "my-postgres"])
    invalid = runner.invoke(app, ["docker", "stop", "bad;name"])

    assert result.exit_code == 0
    assert "Stopped container my-postgres" in result.output
    assert invalid.exit_code == 1
    assert ["docker", "stop", "bad;name"] not in fake_runner.commands()


def test_docker_stop_compose_unknown_container(use_context):
    """Test --compose for a container that publishes no port."""
    use_context()

    result = runner.invoke(app, ["docker", "stop", "web-1", "--compose"])

    assert result.exit_code == 1
    assert "Container not found" in result.output


def test_docker_logs(use_context, fake_runner):
    """Test printing container logs."""
    fake_runner.add(
        ["docker", "logs", "-n", "20", "--timestamps", "web-1"],
        "2025-01-09T12:00:00.000000000Z listening on [::]:80\n",
        stderr="2025-01-09T12:00:01.000000000Z ERROR boom\n",
    )
    use_context()

    result = runner.invoke(app, ["docker", "logs", "web-1"])

    assert result.exit_code == 0
    assert "listening on [::]:80" in result.output
    assert result.output.index("listening") < result.output.index("ERROR boom")


def test_docker_logs_invalid_lines(use_context, fake_runner):
    """Test the line count bound."""
    use_context()

    result = runner.invoke(app, ["docker", "logs", "web-1", "-n", "0"])

    assert result.exit_code == 1
    assert fake_runner.calls == []


def test_open(use_context):
    """Test opening a port in the browser."""
    ctx = use_context()

    result = runner.invoke(app, ["open", "3000"])

    assert result.exit_code == 0
    assert "Opened http://localhost:3000" in result.output
    assert ctx.platform.browser.spawned == [["open", "http://localhost:3000"]]


def test_format_helpers():
    """Test CPU, memory and uptime formatting."""
    now = datetime.now(timezone.utc)

    assert format_cpu(None) == "-"
    assert format_cpu(12.345) == "12.3%"
    assert format_memory(None) == "-"
    assert format_memory(5) == "~0 MB"
    assert format_memory(204800) == "200 MB"
    assert format_uptime(None) == "-"
    assert format_uptime(now - timedelta(days=2, hours=3, minutes=5, seconds=30)) == "2d 3h"
    assert format_uptime(now - timedelta(hours=4, minutes=12, seconds=30)) == "4h 12m"
    assert format_uptime(now - timedelta(minutes=7, seconds=30)) == "7m"


def test_find_available_port():
    """Test skipping a port that is already bound."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        taken = busy.getsockname()[1]

        assert find_available_port("127.0.0.1", taken, 1) is None


class StubServer:
    """Stands in for uvicorn.Server: reports started, then returns."""

    def __init__(self):
        self.started = False
        self.finished = False

    async def serve(self):
        self.started = True
        await asyncio.sleep(0.01)
        self.finished = True


def test_serve_survives_missing_browser(make_context, temp_dir, monkeypatch, capsys):
    """Test that a missing xdg-open only warns and the server keeps running."""
    ctx = make_context()
    ctx.platform.browser = LinuxBrowserProvider()
    monkeypatch.setenv("PATH", str(temp_dir))
    server = StubServer()

    asyncio.run(_serve(server, ctx, "http://localhost:3033", True))

    assert server.finished
    assert "Could not open browser" in capsys.readouterr().out


def test_serve_without_browser(make_context):
    """Test --no-open never touches the browser."""
    ctx = make_context()
    server = StubServer()

    asyncio.run(_serve(server, ctx, "http://localhost:3033", False))

    assert server.finished
    assert ctx.platform.browser.spawned == []

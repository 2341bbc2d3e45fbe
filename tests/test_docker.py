"""Tests for docker module."""

import asyncio

import pytest

from portboard.docker import (
    PS_FORMAT,
    DockerClient,
    compose_directory,
    parse_inspect_labels,
)
from portboard.errors import (
    NotFoundError,
    PermissionDeniedError,
    UpstreamToolError,
    ValidationError,
)
from portboard.models import DockerContainerInfo

PS_OUTPUT = (
    "aaa111bbb222ccc\tweb-1\tnginx:alpine\t0.0.0.0:8080->80/tcp, [::]:8080->80/tcp\n"
    "ddd333eee444fff\tdb-1\tpostgres:15\t127.0.0.1:5433->5432/tcp\n"
    "ggg555hhh666iii\tshadow\tnginx:alpine\t0.0.0.0:8080->8080/tcp\n"
)

INSPECT_OUTPUT = """[
  {"Id": "aaa111bbb222ccc000", "Config": {"Labels": {
    "com.docker.compose.project.working_dir": "/srv/shop",
    "com.docker.compose.project.config_files": "/srv/shop/compose.yaml"}}},
  {"Id": "ddd333eee444fff000", "Config": {"Labels": null}}
]"""


def test_parse_inspect_labels():
    """Test mapping short ids to labels, tolerating nulls and junk."""
    labels = parse_inspect_labels(INSPECT_OUTPUT)

    assert labels["aaa111bbb222"]["com.docker.compose.project.working_dir"] == "/srv/shop"
    assert labels["ddd333eee444"] == {}
    assert parse_inspect_labels("not json") == {}
    assert parse_inspect_labels('{"Id": "x"}') == {}


def test_compose_directory():
    """Test that the working-dir label wins over the config file location."""
    both = DockerContainerInfo(
        id="a",
        name="web",
        image="nginx",
        compose_config_files="/srv/other/compose.yml,/srv/other/override.yml",
        compose_working_dir="/srv/shop",
    )
    files_only = DockerContainerInfo(
        id="a", name="web", image="nginx", compose_config_files="/srv/other/compose.yml"
    )
    plain = DockerContainerInfo(id="a", name="web", image="nginx")

    assert compose_directory(both) == "/srv/shop"
    assert compose_directory(files_only) == "/srv/other"
    assert compose_directory(plain) is None


def test_get_port_mappings(fake_runner):
    """Test building the host port map with compose labels."""
    fake_runner.add(["docker", "ps", "--format", PS_FORMAT], PS_OUTPUT)
    fake_runner.add(
        ["docker", "inspect", "aaa111bbb222ccc", "ddd333eee444fff", "ggg555hhh666iii"],
        INSPECT_OUTPUT,
    )
    client = DockerClient(fake_runner)

    mappings = asyncio.run(client.get_port_mappings())

    assert sorted(mappings) == [5433, 8080]
    web = mappings[8080]
    # First container listed keeps the host port
    assert web.name == "web-1"
    assert web.container_port == 80
    assert web.compose_working_dir == "/srv/shop"
    assert web.compose_config_files == "/srv/shop/compose.yaml"
    assert mappings[5433].image == "postgres:15"
    assert mappings[5433].compose_working_dir is None


def test_get_port_mappings_without_docker(fake_runner):
    """Test that a missing daemon or binary gives an empty map."""
    fake_runner.fail(
        ["docker", "ps", "--format", PS_FORMAT], UpstreamToolError("Command not found: docker")
    )
    client = DockerClient(fake_runner)

    assert asyncio.run(client.get_port_mappings()) == {}


def test_get_port_mappings_inspect_failure(fake_runner):
    """Test that containers are still mapped when inspect fails."""
    fake_runner.add(["docker", "ps", "--format", PS_FORMAT], PS_OUTPUT)
    client = DockerClient(fake_runner)

    mappings = asyncio.run(client.get_port_mappings())

    assert mappings[8080].name == "web-1"
    assert mappings[8080].compose_working_dir is None


def test_stop_container(fake_runner):
    """Test docker stop and its error mapping."""
    fake_runner.add(["docker", "stop", "web-1"], "web-1\n")
    fake_runner.add(
        ["docker", "stop", "gone"],
        returncode=1,
        stderr="Error response from daemon: No such container: gone",
    )
    fake_runner.add(
        ["docker", "stop", "locked"],
        returncode=1,
        stderr="permission denied while trying to connect to the Docker daemon socket",
    )
    fake_runner.add(["docker", "stop", "broken"], returncode=1, stderr="daemon exploded")
    client = DockerClient(fake_runner)

    asyncio.run(client.stop_container("web-1"))
    with pytest.raises(NotFoundError):
        asyncio.run(client.stop_container("gone"))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(client.stop_container("locked"))
    with pytest.raises(UpstreamToolError, match="daemon exploded"):
        asyncio.run(client.stop_container("broken"))


def test_stop_container_rejects_bad_names(fake_runner):
    """Test that invalid names never reach docker."""
    client = DockerClient(fake_runner)

    for name in ["", "-rm", "web; rm -rf /", "$(id)", "a b"]:
        with pytest.raises(ValidationError):
            asyncio.run(client.stop_container(name))
    assert fake_runner.calls == []


def test_stop_compose(fake_runner, temp_dir):
    """Test docker compose down runs inside the project directory."""
    (temp_dir / "docker-compose.yml").write_text("services: {}\n")
    fake_runner.add(["docker", "compose", "down"])
    client = DockerClient(fake_runner)

    asyncio.run(client.stop_compose(str(temp_dir)))

    (call,) = fake_runner.calls
    assert call["args"] == ["docker", "compose", "down"]
    assert str(call["cwd"]) == str(temp_dir)


def test_stop_compose_requires_compose_file(fake_runner, temp_dir):
    """Test that a directory without a compose file is rejected."""
    client = DockerClient(fake_runner)

    with pytest.raises(ValidationError, match="No compose file"):
        asyncio.run(client.stop_compose(str(temp_dir)))
    assert fake_runner.calls == []


def test_stop_compose_rejects_unsafe_paths(fake_runner, temp_dir):
    """Test path validation before anything is executed."""
    client = DockerClient(fake_runner)

    with pytest.raises(ValidationError):
        asyncio.run(client.stop_compose("; rm -rf /"))
    with pytest.raises(ValidationError):
        asyncio.run(client.stop_compose("relative/project"))
    with pytest.raises(NotFoundError):
        asyncio.run(client.stop_compose(str(temp_dir / "missing")))
    assert fake_runner.calls == []


def test_get_logs(fake_runner):
    """Test fetching logs from both streams, oldest first."""
    fake_runner.add(
        ["docker", "logs", "-n", "50", "--timestamps", "web-1"],
        stdout=(
            "2025-01-09T12:00:00.000000000Z GET / 200\n"
            "2025-01-09T12:00:02.000000000Z GET /health 200\n"
        ),
        stderr="2025-01-09T12:00:01.000000000Z [warn] upstream slow\n",
    )
    client = DockerClient(fake_runner)

    entries = asyncio.run(client.get_logs("web-1", lines=50))

    assert [e.message for e in entries] == ["GET / 200", "[warn] upstream slow", "GET /health 200"]
    assert entries[1].level == "warn"


def test_get_logs_since(fake_runner):
    """Test that since is validated and passed through."""
    fake_runner.add(
        ["docker", "logs", "-n", "20", "--timestamps", "--since", "2025-01-09T12:00:00Z", "web-1"],
        stdout="2025-01-09T12:00:05.000000000Z ready\n",
    )
    client = DockerClient(fake_runner)

    entries = asyncio.run(client.get_logs("web-1", since="2025-01-09T12:00:00Z"))

    assert [e.message for e in entries] == ["ready"]
    with pytest.raises(ValidationError):
        asyncio.run(client.get_logs("web-1", since="yesterday"))


def test_get_logs_validates_input(fake_runner):
    """Test line bounds and container id validation."""
    client = DockerClient(fake_runner)

    with pytest.raises(ValidationError):
        asyncio.run(client.get_logs("web-1", lines=0))
    with pytest.raises(ValidationError):
        asyncio.run(client.get_logs("web-1", lines=10001))
    with pytest.raises(ValidationError):
        asyncio.run(client.get_logs("../etc"))
    assert fake_runner.calls == []


def test_get_logs_missing_container(fake_runner):
    """Test that an unknown container maps to NotFoundError."""
    fake_runner.add(
        ["docker", "logs", "-n", "20", "--timestamps", "nope"],
        returncode=1,
        stderr="Error response from daemon: No such container: nope",
    )
    client = DockerClient(fake_runner)

    with pytest.raises(NotFoundError):
        asyncio.run(client.get_logs("nope"))

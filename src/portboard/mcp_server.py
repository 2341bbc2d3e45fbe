"""MCP tool server over stdio.

stdout carries the protocol, so logging goes to stderr only. Tool errors
are raised as exceptions; the MCP server turns them into isError results
carrying the message.
"""

import json
import logging
from typing import Any

from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from . import __version__
from .context import AppContext
from .errors import NotFoundError, ValidationError
from .models import Category, SortKey
from .service import filter_ports, sort_ports
from .validation import (
    validate_container_name,
    validate_flag,
    validate_log_lines,
    validate_port,
    validate_positive_int,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "portboard"

TOOLS = [
    Tool(
        name="list_ports",
        description="List listening ports with process, Docker and connection details",
        inputSchema={
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": [category.value for category in Category],
                    "description": "Only ports in this category",
                },
                "search": {
                    "type": "string",
                    "description": "Match port number, process name, command path or app name",
                },
                "sortBy": {
                    "type": "string",
                    "enum": [key.value for key in SortKey],
                    "description": "Field to sort by (ascending)",
                },
            },
        },
    ),
    Tool(
        name="kill_process",
        description=(
            "Terminate the process behind a port. Docker containers are stopped "
            "and Compose projects brought down instead."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "pid": {"type": "integer", "minimum": 1, "description": "Process ID"},
                "force": {
                    "type": "boolean",
                    "description": "Allow terminating Portboard's own server",
                    "default": False,
                },
            },
            "required": ["pid"],
        },
    ),
    Tool(
        name="get_port_info",
        description="Details of the process listening on a port",
        inputSchema={
            "type": "object",
            "properties": {
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
            },
            "required": ["port"],
        },
    ),
    Tool(
        name="docker_list",
        description="List ports published by Docker containers",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="docker_stop",
        description="Stop a Docker container or its Compose project",
        inputSchema={
            "type": "object",
            "properties": {
                "containerId": {"type": "string", "description": "Container name or ID"},
                "useCompose": {
                    "type": "boolean",
                    "description": "Run docker compose down for the container's project",
                    "default": False,
                },
            },
            "required": ["containerId"],
        },
    ),
    Tool(
        name="docker_logs",
        description="Recent log lines of a Docker container",
        inputSchema={
            "type": "object",
            "properties": {
                "containerId": {"type": "string", "description": "Container name or ID"},
                "lines": {"type": "integer", "minimum": 1, "maximum": 10000, "default": 20},
                "since": {"type": "string", "description": "RFC3339 timestamp"},
            },
            "required": ["containerId"],
        },
    ),
]


def _require(arguments: dict[str, Any], name: str) -> Any:
    if arguments.get(name) is None:
        raise ValidationError(f"Missing required argument: {name}")
    return arguments[name]


async def dispatch(context: AppContext, name: str, arguments: dict[str, Any] | None) -> Any:
    """Run a tool and return its JSON-serializable result.

    Raises:
        PortboardError: Reported to the client as an error result
    """
    arguments = arguments or {}
    service = context.service

    if name == "list_ports":
        ports = filter_ports(
            await service.list_ports(),
            category=arguments.get("category"),
            search=arguments.get("search"),
        )
        if arguments.get("sortBy"):
            ports = sort_ports(ports, arguments["sortBy"])
        return [port.to_dict() for port in ports]

    if name == "kill_process":
        pid = validate_positive_int(_require(arguments, "pid"), "pid")
        force = validate_flag(arguments.get("force"), "force")
        result = await service.terminate(pid, force=force)
        return {"success": True, "action": result.action, "message": result.message}

    if name == "get_port_info":
        port = validate_port(_require(arguments, "port"))
        entry = await service.find_port(port)
        if entry is None:
            raise NotFoundError(f"No process listening on port {port}")
        return entry.to_dict()

    if name == "docker_list":
        return [port.to_dict() for port in await service.list_ports() if port.docker_container]

    if name == "docker_stop":
        container = validate_container_name(_require(arguments, "containerId"))
        message = await service.stop_docker(
            container, use_compose=validate_flag(arguments.get("useCompose"), "useCompose")
        )
        return {"success": True, "message": message}

    if name == "docker_logs":
        container = validate_container_name(_require(arguments, "containerId"), "container ID")
        lines = validate_log_lines(arguments.get("lines", context.settings.docker_log_lines))
        entries = await context.docker.get_logs(
            container, lines=lines, since=arguments.get("since")
        )
        return {
            "containerId": container,
            "logs": [entry.to_dict() for entry in entries],
            "count": len(entries),
        }

    raise ValidationError(f"Unknown tool: {name}")


def build_server(context: AppContext) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[Tool]:
        return TOOLS

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict) -> list[TextContent]:
        logger.debug("Tool call %s %s", name, arguments)
        result = await dispatch(context, name, arguments)
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    return server


async def run_stdio(context: AppContext) -> None:
    """Serve MCP on stdin/stdout until the client disconnects."""
    server = build_server(context)
    logger.info("Starting Portboard MCP server")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=SERVER_NAME,
                server_version=__version__,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )

"""MCP command - serve tools over stdio."""

import asyncio

from ..console import setup_logging
from ..mcp_server import run_stdio
from .common import get_app_context


def mcp_cmd() -> None:
    """Run the MCP server on stdin/stdout.

    Examples:
        portboard mcp
    """
    setup_logging()
    ctx = get_app_context()
    asyncio.run(run_stdio(ctx))

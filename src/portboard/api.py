"""HTTP API consumed by the web UI."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .context import AppContext
from .errors import PortboardError
from .validation import validate_container_name, validate_log_lines, validate_port

logger = logging.getLogger(__name__)

PositiveInt = Annotated[int, Field(strict=True, gt=0)]
NonEmpty = Annotated[str, Field(min_length=1)]

# Messages for request bodies that fail schema validation
VALIDATION_MESSAGES = {
    "/api/ports/kill": "Invalid request: PID must be a positive integer",
    "/api/ports/open-in-ide": "Invalid request: path and ideCommand are required",
    "/api/ports/open-in-terminal": "Invalid request: path and terminalCommand are required",
    "/api/ports/open-container-shell": (
        "Invalid request: containerName and terminalCommand are required"
    ),
    "/api/ports/stop-container": "Invalid request: containerName is required",
    "/api/ports/stop-compose": "Invalid request: projectDirectory is required",
    "/api/ports/open-in-browser": "Invalid request: port must be a positive integer",
}


class KillRequest(BaseModel):
    pid: PositiveInt
    force: bool = False


class OpenInIdeRequest(BaseModel):
    path: NonEmpty
    ideCommand: NonEmpty


class OpenInTerminalRequest(BaseModel):
    path: NonEmpty
    terminalCommand: NonEmpty


class OpenContainerShellRequest(BaseModel):
    containerName: NonEmpty
    terminalCommand: NonEmpty
    shell: str = "sh"


class StopContainerRequest(BaseModel):
    containerName: NonEmpty


class StopComposeRequest(BaseModel):
    projectDirectory: NonEmpty


class OpenInBrowserRequest(BaseModel):
    port: PositiveInt


def error_body(request: Request, message: str) -> dict:
    """Error envelope matching the shape of the route's success response."""
    path = request.url.path
    if path.startswith(("/api/logs/", "/api/icons/")):
        return {"error": message}
    if request.method == "POST":
        return {"success": False, "error": message}
    return {"data": None, "error": message}


def get_context(request: Request) -> AppContext:
    return request.app.state.context


Context = Annotated[AppContext, Depends(get_context)]

ports_router = APIRouter(prefix="/api/ports")


@ports_router.get("")
async def list_ports(ctx: Context):
    ports = await ctx.service.list_ports()
    return {"data": [port.to_dict() for port in ports], "error": None}


@ports_router.post("/kill")
async def kill(body: KillRequest, ctx: Context):
    result = await ctx.service.terminate(body.pid, force=body.force)
    return {"success": True, "error": None, "action": result.action, "message": result.message}


@ports_router.get("/available-ides")
async def available_ides(ctx: Context):
    ides = await ctx.applications.ides()
    return {"data": [app.to_dict() for app in ides], "error": None}


@ports_router.get("/available-terminals")
async def available_terminals(ctx: Context):
    terminals = await ctx.applications.terminals()
    return {"data": [app.to_dict() for app in terminals], "error": None}


@ports_router.post("/open-in-ide")
async def open_in_ide(body: OpenInIdeRequest, ctx: Context):
    await ctx.applications.open_in_ide(body.ideCommand, body.path)
    return {"success": True, "error": None}


@ports_router.post("/open-in-terminal")
async def open_in_terminal(body: OpenInTerminalRequest, ctx: Context):
    await ctx.applications.open_in_terminal(body.terminalCommand, body.path)
    return {"success": True, "error": None}


@ports_router.post("/open-container-shell")
async def open_container_shell(body: OpenContainerShellRequest, ctx: Context):
    await ctx.applications.open_container_shell(
        body.terminalCommand, body.containerName, body.shell
    )
    return {"success": True, "error": None}


@ports_router.post("/stop-container")
async def stop_container(body: StopContainerRequest, ctx: Context):
    await ctx.docker.stop_container(body.containerName)
    return {"success": True, "error": None}


@ports_router.post("/stop-compose")
async def stop_compose(body: StopComposeRequest, ctx: Context):
    await ctx.docker.stop_compose(body.projectDirectory)
    return {"success": True, "error": None}


@ports_router.post("/open-in-browser")
async def open_in_browser(body: OpenInBrowserRequest, ctx: Context):
    port = validate_port(body.port)
    ctx.platform.browser.open_url(ctx.service.localhost_url(port))
    return {"success": True, "error": None}


@ports_router.get("/network-url/{port}")
async def network_url(port: str, ctx: Context):
    number = validate_port(port)
    return {
        "data": {
            "url": ctx.service.network_url(number),
            "localhostUrl": ctx.service.localhost_url(number),
        },
        "error": None,
    }


misc_router = APIRouter()


@misc_router.get("/api/icons/{filename}")
async def icon(filename: str, ctx: Context):
    path = ctx.icon_cache.resolve(filename)
    return FileResponse(
        path, media_type="image/png", headers={"Cache-Control": "public, max-age=86400"}
    )


@misc_router.get("/api/logs/{container_id}")
async def logs(
    container_id: str,
    ctx: Context,
    lines: str | None = None,
    since: str | None = None,
):
    validate_container_name(container_id, "container ID")
    count = validate_log_lines(lines) if lines is not None else ctx.settings.docker_log_lines
    entries = await ctx.docker.get_logs(container_id, lines=count, since=since or None)
    return {
        "containerId": container_id,
        "logs": [entry.to_dict() for entry in entries],
        "count": len(entries),
    }


@misc_router.get("/health")
async def health():
    return {"status": "ok"}


def create_app(context: AppContext) -> FastAPI:
    """Build the FastAPI application around an explicit context."""
    app = FastAPI(title="Portboard", version=__version__, docs_url=None, redoc_url=None)
    app.state.context = context

    # The UI dev server runs on another port
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortboardError)
    async def portboard_error(request: Request, exc: PortboardError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(error_body(request, exc.message), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        message = VALIDATION_MESSAGES.get(request.url.path)
        if message is None:
            errors = exc.errors()
            message = f"Invalid request: {errors[0]['msg']}" if errors else "Invalid request"
        return JSONResponse(error_body(request, message), status_code=400)

    app.include_router(ports_router)
    app.include_router(misc_router)
    return app

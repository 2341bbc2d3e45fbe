"""Error taxonomy shared by the API, CLI and MCP surfaces."""


class PortboardError(Exception):
    """Base class for errors reported to users."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PortboardError):
    """Raised when input fails a constraint."""

    status_code = 400


class NotFoundError(PortboardError):
    """Raised when a port, pid, container or directory does not exist."""

    status_code = 404


class PermissionDeniedError(PortboardError):
    """Raised when the caller may not act on a process or on Docker."""

    status_code = 403


class ProtectedResourceError(PortboardError):
    """Raised when terminating Portboard's own port without force."""

    status_code = 403


class UpstreamToolError(PortboardError):
    """Raised when an external command is missing, times out or fails."""

    status_code = 500

    def __init__(self, message: str, stderr: str = "") -> None:
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
        self.stderr = stderr


class UnsupportedPlatformError(Exception):
    """Raised at startup when the OS has no provider implementation."""

    pass

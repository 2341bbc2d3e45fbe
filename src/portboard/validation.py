"""Input validation shared by the HTTP API, CLI and MCP tools.

Anything that ends up in a subprocess argument vector passes through here
first. Each check raises ValidationError (400) naming the violated
constraint, or NotFoundError (404) when a path does not exist.
"""

import re
from datetime import datetime
from pathlib import Path

from .errors import NotFoundError, ValidationError

CONTAINER_NAME = re.compile(r"^[a-zA-Z0-9][\w.-]*$")
SAFE_PATH = re.compile(r"^[\w./-]+$")
SHELL_METACHARACTERS = (";", "|", "&", "`", "$", "(", ")", "<", ">", "\\", "'", '"')
CONTAINER_SHELLS = ("sh", "bash", "zsh", "ash")

MIN_LOG_LINES = 1
MAX_LOG_LINES = 10000


def validate_container_name(name: str, what: str = "container name") -> str:
    """Check a Docker container name or id."""
    if not isinstance(name, str) or not CONTAINER_NAME.fullmatch(name):
        raise ValidationError(
            f"Invalid {what}: must start with a letter or digit and contain only "
            "letters, digits, underscores, dots and hyphens"
        )
    return name


def validate_positive_int(value: object, what: str) -> int:
    """Check that a value is a positive integer (booleans rejected)."""
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be a positive integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{what} must be a positive integer")
    return value


def validate_flag(value: object, what: str) -> bool:
    """Check an optional boolean argument; absent means False."""
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{what} must be a boolean")
    return value


def validate_port(value: object) -> int:
    port = validate_positive_int(value, "port")
    if port > 65535:
        raise ValidationError("port must be between 1 and 65535")
    return port


def validate_log_lines(value: object) -> int:
    lines = validate_positive_int(value, "lines")
    if not MIN_LOG_LINES <= lines <= MAX_LOG_LINES:
        raise ValidationError(f"lines must be between {MIN_LOG_LINES} and {MAX_LOG_LINES}")
    return lines


def validate_since(value: str) -> str:
    """Check an RFC3339 timestamp such as 2025-01-09T12:00:00Z."""
    text = value.strip()
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    if "T" not in candidate.upper():
        raise ValidationError("since must be an RFC3339 timestamp")
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as e:
        raise ValidationError("since must be an RFC3339 timestamp") from e
    if parsed.tzinfo is None:
        raise ValidationError("since must be an RFC3339 timestamp with a timezone")
    return text


def validate_shell(shell: str) -> str:
    if shell not in CONTAINER_SHELLS:
        raise ValidationError(f"shell must be one of: {', '.join(CONTAINER_SHELLS)}")
    return shell


def validate_project_directory(path: str) -> Path:
    """Strict check for a directory that is passed to docker compose.

    Order: character allow-list, absolute path, shell metacharacter
    deny-list, then existence as a directory.

    Raises:
        ValidationError: On a format violation or a non-directory path
        NotFoundError: If the directory does not exist
    """
    if not isinstance(path, str) or not SAFE_PATH.fullmatch(path):
        raise ValidationError(
            "Invalid directory path: only alphanumeric, dots, slashes, hyphens, "
            "and underscores allowed"
        )
    if not path.startswith("/"):
        raise ValidationError("Invalid directory path: must be an absolute path")
    if any(char in path for char in SHELL_METACHARACTERS):
        raise ValidationError("Invalid directory path: contains dangerous characters")
    return _existing_directory(path)


def validate_open_directory(path: str) -> Path:
    """Check a directory that an IDE or terminal is asked to open.

    Spaces and platform separators are allowed here because the path is only
    ever passed as a single argv element.
    """
    if not isinstance(path, str) or not path or "\x00" in path:
        raise ValidationError("Invalid directory path")
    if not Path(path).is_absolute():
        raise ValidationError("Invalid directory path: must be an absolute path")
    return _existing_directory(path)


def _existing_directory(path: str) -> Path:
    directory = Path(path)
    if not directory.exists():
        raise NotFoundError(f"Directory not found or not accessible: {path}")
    if not directory.is_dir():
        raise ValidationError("Invalid path: not a directory")
    return directory

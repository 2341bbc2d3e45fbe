"""Configuration management for Portboard."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import platformdirs
import yaml

ENV_PREFIX = "PORTBOARD_"


def get_config_dir() -> Path:
    """Get the configuration directory for Portboard.

    Returns:
        Path to config directory (not created)
    """
    return Path(platformdirs.user_config_dir("portboard", "portboard"))


def get_config_path() -> Path:
    """Get the YAML configuration file path.

    PORTBOARD_CONFIG overrides the default location.

    Returns:
        Path to config file
    """
    override = os.getenv(f"{ENV_PREFIX}CONFIG")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "config.yaml"


def _default_icon_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "portboard-icons"


@dataclass
class Settings:
    """Runtime settings."""

    port: int = 3033
    host: str = "127.0.0.1"
    max_port_attempts: int = 10
    dev_server_port: int = 3000
    dev_mode: bool = False
    command_timeout: float = 10.0
    icon_cache_dir: Path = field(default_factory=_default_icon_cache_dir)
    icon_size: int = 64
    docker_log_lines: int = 20


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read the optional YAML file, returning {} when absent or invalid."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _coerce(value: Any, default: Any) -> Any:
    """Convert a raw env/YAML value to the type of the default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            return default
    if isinstance(default, Path):
        return Path(str(value)).expanduser()
    return str(value)


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from environment variables, then YAML, then defaults.

    Environment variables are PORTBOARD_<FIELD> (e.g. PORTBOARD_PORT).
    PORTBOARD_ENV=development turns on dev_mode.

    Args:
        config_path: YAML file to read. Defaults to get_config_path().

    Returns:
        Settings instance
    """
    defaults = Settings()
    data = _load_yaml(config_path or get_config_path())
    values: dict[str, Any] = {}

    for name in defaults.__dataclass_fields__:
        default = getattr(defaults, name)
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            raw = data.get(name)
        if raw is not None:
            values[name] = _coerce(raw, default)

    if os.getenv(f"{ENV_PREFIX}ENV", "").lower() == "development":
        values["dev_mode"] = True

    return Settings(**values)

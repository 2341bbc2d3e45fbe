"""Content-addressed cache of extracted application icons."""

import hashlib
import logging
import re
import shutil
from pathlib import Path

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ICON_FILENAME = re.compile(r"^[a-f0-9]{32}\.png$")
ICON_URI_PREFIX = "/api/icons/"


class IconCache:
    """PNG icons keyed by the md5 of the application path.

    Entries are never invalidated while the process runs; a cached file is
    returned as-is on every lookup.
    """

    def __init__(self, directory: Path, size: int = 64):
        self.directory = Path(directory)
        self.size = size

    @staticmethod
    def key(app_path: str) -> str:
        return hashlib.md5(app_path.encode()).hexdigest()

    @staticmethod
    def uri(key: str) -> str:
        return f"{ICON_URI_PREFIX}{key}.png"

    def path_for(self, app_path: str) -> Path:
        """Cache file that holds (or will hold) the icon for app_path."""
        return self.directory / f"{self.key(app_path)}.png"

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def lookup(self, app_path: str) -> str | None:
        """Return the icon URI if the icon was already extracted."""
        if self.path_for(app_path).is_file():
            return self.uri(self.key(app_path))
        return None

    def store_file(self, app_path: str, source: Path) -> str:
        """Copy an existing PNG into the cache.

        Returns:
            URI of the cached icon
        """
        self.ensure_directory()
        target = self.path_for(app_path)
        shutil.copyfile(source, target)
        logger.debug("Cached icon for %s from %s", app_path, source)
        return self.uri(self.key(app_path))

    def resolve(self, filename: str) -> Path:
        """Map a requested icon file name to its file on disk.

        Raises:
            ValidationError: If the name is not "<32 hex chars>.png"
            NotFoundError: If no such icon has been cached
        """
        if not ICON_FILENAME.fullmatch(filename):
            raise ValidationError("Invalid icon filename")
        path = self.directory / filename
        if not path.is_file():
            raise NotFoundError("Icon not found")
        return path

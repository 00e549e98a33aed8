"""
Image storage backends.

Uploads are validated by the images router; a backend only decides where
the bytes live and how a stored name maps back to a file.  Stored names
are generated here, never taken from the client.
"""
import logging
import re
import uuid
from pathlib import Path
from typing import Protocol

from pandamarket.config import settings

logger = logging.getLogger(__name__)

_STORED_NAME = re.compile(r"^[0-9a-f]{32}\.(png|jpg)$")


class ImageStorage(Protocol):
    def save(self, data: bytes, extension: str) -> str: ...

    def path_for(self, name: str) -> Path | None: ...


class LocalImageStorage:
    """Writes images into one directory on local disk."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def save(self, data: bytes, extension: str) -> str:
        """Store *data* under a fresh random name and return that name."""
        self.directory.mkdir(parents=True, exist_ok=True)
        name = f"{uuid.uuid4().hex}{extension}"
        (self.directory / name).write_bytes(data)
        logger.info("Stored image %s (%d bytes)", name, len(data))
        return name

    def path_for(self, name: str) -> Path | None:
        """File for a stored *name*; None for unknown or foreign names."""
        if not _STORED_NAME.match(name):
            return None
        path = self.directory / name
        return path if path.is_file() else None


image_storage: ImageStorage = LocalImageStorage(settings.UPLOAD_DIR)

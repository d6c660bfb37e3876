"""Local filesystem storage for uploaded photos and generated images."""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from hero_wheel.config import settings


logger = logging.getLogger(__name__)

UPLOADS_FOLDER = "uploads"
RESULTS_FOLDER = "results"

# Public URL prefix the app serves the storage root under
FILES_ROUTE = "/files"

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def mime_type_extension(mime_type: str) -> str:
    """File extension for an image MIME type, png when unknown."""
    return MIME_EXTENSIONS.get(mime_type, "png")


def format_bytes(size: int) -> str:
    """Human readable size, e.g. 5242880 -> '5 MB'."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while size >= 1024 ** (i + 1) and i < len(units) - 1:
        i += 1
    value = round(size / (1024**i), 2)
    return f"{value:g} {units[i]}"


@dataclass
class StoredImage:
    """Where a stored image ended up."""

    url: str
    filename: str  # path relative to the storage root
    size: int
    content_type: str


class LocalImageStorage:
    """Writes images under a root directory served at FILES_ROUTE."""

    def __init__(self, root: str | Path | None = None, public_base_url: str | None = None):
        self.root = Path(root or settings.storage_root)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def ensure_dirs(self) -> None:
        for folder in (UPLOADS_FOLDER, RESULTS_FOLDER):
            (self.root / folder).mkdir(parents=True, exist_ok=True)

    def public_url(self, filename: str) -> str:
        return f"{self.public_base_url}{FILES_ROUTE}/{filename}"

    async def save(self, content: bytes, content_type: str, folder: str) -> StoredImage:
        """Store bytes as <folder>/<uuid>.<ext>."""
        filename = f"{folder}/{uuid.uuid4()}.{mime_type_extension(content_type)}"
        path = self.root / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, content)
        logger.info("Stored %s (%s)", filename, format_bytes(len(content)))
        return StoredImage(
            url=self.public_url(filename),
            filename=filename,
            size=len(content),
            content_type=content_type,
        )


# Global instance
image_storage = LocalImageStorage()

"""Image byte storage backends."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from rebus.errors import StorageError

logger = logging.getLogger(__name__)


class ImageStore(Protocol):
    """Converts rendered bytes into a locator stored on the puzzle record."""

    async def put(self, date: str, position: int, data: bytes) -> str:
        ...


def image_filename(date: str, position: int) -> str:
    return f"{date}-{position}.png"


class LocalImageStore:
    """Stores images as ``{date}-{position}.png`` files under a root directory."""

    def __init__(self, root: Path, url_prefix: str = "/api/images") -> None:
        self._root = root
        self._url_prefix = url_prefix.rstrip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, date: str, position: int, data: bytes) -> str:
        """Write image bytes and return the public URL of the file."""

        filename = image_filename(date, position)
        path = self._root / filename
        try:
            await asyncio.to_thread(self._write_file, path, data)
        except OSError as exc:
            raise StorageError(f"Failed to save image {filename}: {exc}") from exc
        logger.info("Saved image to %s", path)
        return f"{self._url_prefix}/{filename}"

    def resolve(self, filename: str) -> Path:
        """Return the on-disk path for ``filename``; reject anything outside the root."""

        if not filename or "/" in filename or "\\" in filename or ".." in filename:
            raise ValueError("Invalid filename")
        return self._root / filename

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

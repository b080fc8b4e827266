"""
File storage for v1 multipart uploads

Uploaded images are written under ``settings.upload_dir`` and exposed as
``{public_base_url}/uploads/{key}`` (served by the app's static mount).
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from inspection_engine.core.config import settings
from inspection_engine.core.exceptions import StorageError, ValidationError
from inspection_engine.core.logging import get_logger

logger = get_logger(__name__)

IMAGE_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}
_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]")


class FileStorageProtocol(Protocol):
    async def save(self, *, prefix: str, filename: str, content_type: str, data: bytes) -> str:
        """
        Persist one file

        Returns:
            Public URL of the stored file

        Raises:
            ValidationError: unsupported content type or empty file
            StorageError: write failed
        """
        ...

    async def delete(self, url: str) -> bool:
        """Best-effort removal of a stored file by its public URL."""
        ...


class LocalFileStorage:
    def __init__(self, upload_dir: str | None = None, public_base_url: str | None = None) -> None:
        self.root = Path(upload_dir or settings.upload_dir)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    async def save(self, *, prefix: str, filename: str, content_type: str, data: bytes) -> str:
        suffix = IMAGE_CONTENT_TYPES.get((content_type or "").lower())
        if suffix is None:
            raise ValidationError(
                f"Unsupported image type: {content_type}",
                details={"field": "files", "filename": filename},
            )
        if not data:
            raise ValidationError("Empty file", details={"field": "files", "filename": filename})

        key = f"{_SAFE_SEGMENT.sub('_', prefix)}/{uuid4().hex}{suffix}"
        path = self.root / key
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, data)
        except OSError as exc:
            logger.error("file_store_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to store {filename}: {exc}") from exc

        logger.debug("file_stored", key=key, size=len(data))
        return f"{self.public_base_url}/uploads/{key}"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def delete(self, url: str) -> bool:
        """Remove a file previously returned by ``save``; False if it was not ours or is gone."""
        marker = f"{self.public_base_url}/uploads/"
        if not url.startswith(marker):
            return False
        path = self.root / url[len(marker):]
        loop = asyncio.get_running_loop()
        try:
            removed = await loop.run_in_executor(None, self._unlink, path)
        except OSError as exc:
            logger.warning("file_delete_failed", url=url, error=str(exc))
            return False
        if removed:
            logger.debug("file_deleted", url=url)
        return removed

    @staticmethod
    def _unlink(path: Path) -> bool:
        if not path.is_file():
            return False
        path.unlink()
        return True

"""
Local file storage for v1 uploads
"""

from pathlib import Path

import pytest

from inspection_engine.core.exceptions import StorageError, ValidationError
from inspection_engine.services.storage import LocalFileStorage


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(upload_dir=str(tmp_path), public_base_url="http://files.test/")


@pytest.mark.asyncio
async def test_save_writes_file_and_returns_public_url(storage: LocalFileStorage, tmp_path: Path) -> None:
    url = await storage.save(prefix="shop 1", filename="front.jpg", content_type="image/jpeg", data=b"jpeg-bytes")

    assert url.startswith("http://files.test/uploads/shop_1/")
    assert url.endswith(".jpg")
    key = url.split("/uploads/", 1)[1]
    assert (tmp_path / key).read_bytes() == b"jpeg-bytes"


@pytest.mark.asyncio
async def test_unsupported_type_is_rejected(storage: LocalFileStorage) -> None:
    with pytest.raises(ValidationError, match="Unsupported image type"):
        await storage.save(prefix="s", filename="notes.txt", content_type="text/plain", data=b"x")


@pytest.mark.asyncio
async def test_empty_file_is_rejected(storage: LocalFileStorage) -> None:
    with pytest.raises(ValidationError, match="Empty file"):
        await storage.save(prefix="s", filename="a.png", content_type="image/png", data=b"")


@pytest.mark.asyncio
async def test_write_failure_becomes_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    storage = LocalFileStorage(upload_dir=str(blocker), public_base_url="http://files.test")

    with pytest.raises(StorageError):
        await storage.save(prefix="s", filename="a.png", content_type="image/png", data=b"png")


@pytest.mark.asyncio
async def test_delete_removes_saved_file(storage: LocalFileStorage, tmp_path: Path) -> None:
    url = await storage.save(prefix="s", filename="a.png", content_type="image/png", data=b"png")
    key = url.split("/uploads/", 1)[1]

    assert await storage.delete(url) is True
    assert not (tmp_path / key).exists()
    assert await storage.delete(url) is False


@pytest.mark.asyncio
async def test_delete_ignores_foreign_urls(storage: LocalFileStorage) -> None:
    assert await storage.delete("https://cdn.example.test/front.jpg") is False

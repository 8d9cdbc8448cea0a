import asyncio
from io import BytesIO
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from devevent.errors import ValidationError
from devevent.services.storage import LocalEventImageStorage


def _upload(filename: str, data: bytes, content_type: str | None = None) -> UploadFile:
    headers = Headers({"content-type": content_type}) if content_type else None
    return UploadFile(filename=filename, file=BytesIO(data), headers=headers)


def test_local_storage_saves_and_deletes(tmp_path: Path):
    async def _run():
        storage = LocalEventImageStorage(base_path=str(tmp_path / "images"), base_url="/media/events")

        result = await storage.save(_upload("../cover art.png", b"\x89PNG fake", "image/png"))

        assert result.backend == "local"
        assert result.size == len(b"\x89PNG fake")
        assert result.url == f"/media/events/{result.path}"
        assert "/" not in result.path
        assert result.path.endswith("_cover_art.png")

        saved = tmp_path / "images" / result.path
        assert saved.read_bytes() == b"\x89PNG fake"

        await storage.delete(result.path)
        assert not saved.exists()

    asyncio.run(_run())


def test_local_storage_accepts_image_suffix_without_content_type(tmp_path: Path):
    async def _run():
        storage = LocalEventImageStorage(base_path=str(tmp_path))
        result = await storage.save(_upload("banner.webp", b"RIFF"))
        assert result.size == 4

    asyncio.run(_run())


def test_local_storage_rejects_non_images(tmp_path: Path):
    async def _run():
        storage = LocalEventImageStorage(base_path=str(tmp_path))
        with pytest.raises(ValidationError):
            await storage.save(_upload("notes.txt", b"hello", "text/plain"))
        assert list(tmp_path.iterdir()) == []

    asyncio.run(_run())


def test_local_storage_rejects_empty_files(tmp_path: Path):
    async def _run():
        storage = LocalEventImageStorage(base_path=str(tmp_path))
        with pytest.raises(ValidationError):
            await storage.save(_upload("cover.png", b"", "image/png"))
        assert list(tmp_path.iterdir()) == []

    asyncio.run(_run())


def test_local_storage_caps_long_filenames(tmp_path: Path):
    async def _run():
        storage = LocalEventImageStorage(base_path=str(tmp_path), base_url="/media/events")
        result = await storage.save(_upload("a" * 300 + ".png", b"\x89PNG fake", "image/png"))

        stored_name = result.path.split("_", 1)[1]
        assert len(stored_name) <= 100
        assert stored_name.endswith(".png")
        assert stored_name.startswith("aaaa")
        assert (tmp_path / result.path).read_bytes() == b"\x89PNG fake"
        assert len(result.url) < 500

    asyncio.run(_run())

from __future__ import annotations

import asyncio
import logging
import os
import pathlib
import re
import uuid
from dataclasses import dataclass
from typing import Optional

import aiofiles
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from devevent.errors import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"}

# Upper bound for a sanitised upload name, extension included.
_MAX_FILENAME_LENGTH = 100
_MAX_SUFFIX_LENGTH = 16


class ImageStorageError(Exception):
    """Raised when the configured backend fails to store an image."""


@dataclass
class StoredImage:
    backend: str
    path: str
    url: str
    size: int


def _sanitize_filename(filename: str) -> str:
    name = pathlib.Path(filename).name
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name).strip("._") or "image"
    if len(name) > _MAX_FILENAME_LENGTH:
        stem, suffix = os.path.splitext(name)
        suffix = suffix[:_MAX_SUFFIX_LENGTH]
        stem = stem[: _MAX_FILENAME_LENGTH - len(suffix)].rstrip("._") or "image"
        name = stem + suffix
    return name


def _check_is_image(upload: UploadFile) -> None:
    content_type = (upload.content_type or "").lower()
    suffix = pathlib.Path(upload.filename or "").suffix.lower()
    if content_type.startswith("image/"):
        return
    if not content_type or content_type == "application/octet-stream":
        if suffix in _ALLOWED_SUFFIXES:
            return
    raise ValidationError("Uploaded file must be an image", field="image")


class EventImageStorage:
    backend_name = "base"

    async def save(self, upload: UploadFile) -> StoredImage:  # pragma: no cover - interface only
        raise NotImplementedError

    async def delete(self, path: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


class LocalEventImageStorage(EventImageStorage):
    backend_name = "local"

    def __init__(self, base_path: Optional[str] = None, base_url: Optional[str] = None) -> None:
        base_path = base_path or os.getenv("EVENT_IMAGE_LOCAL_PATH", "storage/events")
        self.base_path = pathlib.Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or os.getenv("EVENT_IMAGE_BASE_URL", "/media/events")).rstrip("/")

    def _resolve(self, relative: str) -> pathlib.Path:
        path = (self.base_path / relative).resolve()
        if not path.is_relative_to(self.base_path):
            raise ValidationError("Invalid image path", field="image")
        return path

    async def save(self, upload: UploadFile) -> StoredImage:
        _check_is_image(upload)
        filename = _sanitize_filename(upload.filename or "image")
        relative = f"{uuid.uuid4().hex}_{filename}"
        path = self._resolve(relative)

        size = 0
        async with aiofiles.open(path, "wb") as buffer:
            while True:
                chunk = await upload.read(1024 * 1024)
                if not chunk:
                    break
                size += len(chunk)
                await buffer.write(chunk)
        await upload.close()

        if size == 0:
            path.unlink(missing_ok=True)
            raise ValidationError("Image file is empty", field="image")

        return StoredImage(
            backend=self.backend_name,
            path=relative,
            url=f"{self.base_url}/{relative}",
            size=size,
        )

    async def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)


class S3EventImageStorage(EventImageStorage):
    backend_name = "s3"

    def __init__(self) -> None:
        bucket = os.getenv("EVENT_IMAGE_S3_BUCKET")
        if not bucket:
            raise RuntimeError("EVENT_IMAGE_S3_BUCKET must be set for S3 storage")
        self.bucket = bucket
        self.folder = os.getenv("EVENT_IMAGE_S3_FOLDER", "DevEvent").strip("/")
        self.client = boto3.client(
            "s3",
            endpoint_url=os.getenv("EVENT_IMAGE_S3_ENDPOINT"),
            region_name=os.getenv("EVENT_IMAGE_S3_REGION"),
        )
        configured = os.getenv("EVENT_IMAGE_BASE_URL", "").strip()
        self.base_url = (configured or f"https://{bucket}.s3.amazonaws.com").rstrip("/")

    async def save(self, upload: UploadFile) -> StoredImage:
        _check_is_image(upload)
        filename = _sanitize_filename(upload.filename or "image")
        key = f"{self.folder}/{uuid.uuid4().hex}_{filename}" if self.folder else f"{uuid.uuid4().hex}_{filename}"

        def _upload():
            self.client.upload_fileobj(
                upload.file,
                self.bucket,
                key,
                ExtraArgs={"ContentType": upload.content_type or "application/octet-stream"},
            )

        try:
            await asyncio.to_thread(_upload)
        except (BotoCoreError, ClientError) as exc:
            raise ImageStorageError(f"Failed to store image: {exc}") from exc
        size = upload.file.tell()
        await upload.close()
        return StoredImage(
            backend=self.backend_name,
            path=key,
            url=f"{self.base_url}/{key}",
            size=size,
        )

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Could not delete image %s: %s", path, exc)


_storage: Optional[EventImageStorage] = None


def get_image_storage() -> EventImageStorage:
    global _storage
    if _storage is not None:
        return _storage

    backend = os.getenv("EVENT_IMAGE_STORAGE", "local").lower()
    if backend == "local":
        _storage = LocalEventImageStorage()
    elif backend == "s3":
        _storage = S3EventImageStorage()
    else:  # pragma: no cover - configuration error
        raise RuntimeError(f"Unsupported EVENT_IMAGE_STORAGE backend: {backend}")
    return _storage

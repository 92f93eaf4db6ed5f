"""Naming and input checks for uploaded background images."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from uuid import uuid4

from fastapi import UploadFile

_extension_pattern = re.compile(r"[^A-Za-z0-9]+")

DEFAULT_EXTENSION = "bin"


class BackgroundImageError(RuntimeError):
    """Base error raised for rejected background uploads."""


class UnsupportedImageType(BackgroundImageError):
    """Raised when the uploaded file is not an image."""


class BackgroundImageTooLarge(BackgroundImageError):
    """Raised when an uploaded file exceeds the configured limit."""


def file_extension(filename: str | None) -> str:
    """Return the text after the last dot of ``filename``, made path-safe."""

    name = PurePosixPath(filename or "").name
    if "." not in name:
        return DEFAULT_EXTENSION
    extension = _extension_pattern.sub("", name.rsplit(".", 1)[-1])
    return extension or DEFAULT_EXTENSION


def make_background_path(filename: str | None, *, folder: str = "backgrounds") -> str:
    """Return a fresh object path ``<folder>/<uuid>.<ext>`` for an upload."""

    return str(PurePosixPath(folder) / f"{uuid4()}.{file_extension(filename)}")


def ensure_image_type(content_type: str | None) -> str:
    """Return the normalized MIME type, rejecting anything outside ``image/*``."""

    mime_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not mime_type.startswith("image/"):
        raise UnsupportedImageType(mime_type or "unknown")
    return mime_type


async def read_upload(upload: UploadFile, *, max_size_bytes: int) -> bytes:
    """Read an upload in chunks, enforcing the size limit."""

    chunk_size = 1024 * 1024  # 1 MiB
    size = 0
    chunks: list[bytes] = []
    try:
        while True:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            size += len(chunk)
            if size > max_size_bytes:
                raise BackgroundImageTooLarge(
                    f"Background image exceeded {max_size_bytes} bytes limit"
                )
            chunks.append(chunk)
    finally:
        await upload.close()

    data = b"".join(chunks)
    if not data:
        raise BackgroundImageError("Uploaded file was empty")
    return data


__all__ = [
    "BackgroundImageError",
    "BackgroundImageTooLarge",
    "UnsupportedImageType",
    "ensure_image_type",
    "file_extension",
    "make_background_path",
    "read_upload",
]

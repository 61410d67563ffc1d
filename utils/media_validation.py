"""Validation helpers for uploaded images."""

from __future__ import annotations

import io
import logging
import os
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from utils.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

# Pillow format name -> MIME type
_PIL_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}

TYPE_ERROR_MESSAGE = "Only JPEG, PNG, and WEBP images are allowed."
CHUNK_SIZE = 64 * 1024


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lowercase a MIME type and strip parameters such as `; charset=...`."""
    return (content_type or "").lower().split(";", 1)[0].strip()


def size_error_message(max_bytes: int) -> str:
    return f"Image is too large. Please upload an image smaller than {max_bytes // (1024 * 1024)}MB."


def validate_image_upload(upload: UploadFile) -> str:
    """Check the declared type of an upload and return its normalized MIME type.

    The filename extension must be one of the accepted image extensions.
    When the client declares a content type it must be an accepted image
    type as well; otherwise the type is inferred from the extension.

    Raises:
        ValidationError: If the upload has no filename or an unsupported type.
    """
    if not upload.filename:
        raise ValidationError("No image file uploaded")

    filename = upload.filename.lower()
    if not filename.endswith(ALLOWED_EXTENSIONS):
        raise ValidationError(TYPE_ERROR_MESSAGE)

    content_type = normalize_content_type(upload.content_type)
    if content_type and content_type != "application/octet-stream":
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(TYPE_ERROR_MESSAGE)
        return content_type

    if filename.endswith(".png"):
        return "image/png"
    if filename.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


def sniff_image_type(image_bytes: bytes) -> str:
    """Return the MIME type Pillow detects for `image_bytes`.

    Raises:
        ValidationError: If the bytes are not a JPEG, PNG or WEBP image.
    """
    if not image_bytes:
        raise ValidationError("Uploaded image is empty.")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError(TYPE_ERROR_MESSAGE) from exc

    mime_type = _PIL_FORMATS.get(fmt or "")
    if mime_type is None:
        raise ValidationError(TYPE_ERROR_MESSAGE)
    return mime_type


@asynccontextmanager
async def spooled_upload(
    upload: UploadFile,
    max_bytes: int,
    tmp_dir: Optional[Path] = None,
) -> AsyncIterator[Path]:
    """Write an upload to a temporary file, enforcing the size ceiling while streaming.

    The temporary file is removed when the context exits, whether the body
    succeeded or raised.

    Raises:
        ValidationError: If the upload exceeds `max_bytes` or is empty.
    """
    base = Path(tmp_dir) if tmp_dir else Path(tempfile.gettempdir())
    base.mkdir(parents=True, exist_ok=True)
    suffix = os.path.splitext(upload.filename or "")[1].lower()
    path = base / f"upload-{uuid.uuid4().hex}{suffix}"

    try:
        written = 0
        async with aiofiles.open(path, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise ValidationError(size_error_message(max_bytes))
                await out.write(chunk)
        if written == 0:
            raise ValidationError("Uploaded image is empty.")
        yield path
    finally:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove temporary upload %s: %s", path.name, exc)


async def read_file_bytes(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()

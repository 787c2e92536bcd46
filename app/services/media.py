from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile
from loguru import logger

from app.core.config import settings
from app.core.errors import ValidationError


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes


def _media_root() -> Path:
    return Path(settings.MEDIA_ROOT)


def validate_image(upload: ImageUpload | None, *, field: str) -> ImageUpload:
    if upload is None or not upload.data:
        raise ValidationError.field(field, f"{field} is required")

    if upload.content_type not in settings.ALLOWED_IMAGE_TYPES:
        raise ValidationError.field(field, "Unsupported file type (jpeg, png, gif, webp only)")

    if len(upload.data) > settings.MAX_IMAGE_BYTES:
        limit_mb = settings.MAX_IMAGE_BYTES // (1024 * 1024)
        raise ValidationError.field(field, f"File is too large (max {limit_mb}MB)")

    return upload


def store_image(upload: ImageUpload, *, folder: str) -> str:
    """Write an already validated image and return its public reference."""
    ext = settings.ALLOWED_IMAGE_TYPES[upload.content_type]
    name = f"{folder.rstrip('s')}-{uuid4().hex}{ext}"

    target_dir = _media_root() / folder
    target_dir.mkdir(parents=True, exist_ok=True)

    # write to a temp name first so readers never see a partial file
    final_path = target_dir / name
    tmp_path = target_dir / f".{name}.part"
    tmp_path.write_bytes(upload.data)
    os.replace(tmp_path, final_path)

    ref = f"{settings.MEDIA_URL.rstrip('/')}/{folder}/{name}"
    logger.debug("Stored image {} ({} bytes)", ref, len(upload.data))
    return ref


def path_for(ref: str) -> Path | None:
    prefix = settings.MEDIA_URL.rstrip("/") + "/"
    if not ref or not ref.startswith(prefix):
        return None

    relative = ref[len(prefix):]
    root = _media_root().resolve()
    candidate = (root / relative).resolve()
    if root not in candidate.parents:
        return None
    return candidate


def delete_image(ref: str | None) -> None:
    if not ref:
        return

    p = path_for(ref)
    if p is None:
        logger.warning("Refusing to delete image outside media root: {}", ref)
        return

    try:
        p.unlink()
        logger.debug("Removed image {}", ref)
    except FileNotFoundError:
        logger.warning("Image already missing on delete: {}", ref)


async def read_upload(file: UploadFile | None) -> ImageUpload | None:
    """Read a multipart file, capped one byte past the limit so oversize is detectable."""
    if file is None or not file.filename:
        return None

    data = await file.read(settings.MAX_IMAGE_BYTES + 1)
    await file.close()
    return ImageUpload(
        filename=file.filename,
        content_type=(file.content_type or "").lower(),
        data=data,
    )

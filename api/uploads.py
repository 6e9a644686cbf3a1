"""
api/uploads.py -- Image upload handling for profile photos and event images.

Images are written to UPLOAD_DIR under a random file name and served by the
/uploads static mount in api/main.py. The client-supplied file name is used
only for its extension, never as a path component.

Limits:
  - content type must be image/*, extension one of _ALLOWED_EXTENSIONS (415)
  - size at most MAX_UPLOAD_BYTES (413)
"""

import logging
import secrets
from pathlib import Path

from fastapi import HTTPException, UploadFile

from api.models import ErrorDetail
from core.config import get_settings

logger = logging.getLogger("tickethub.api")

_ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

UPLOAD_URL_PREFIX = "/uploads"


async def save_image(file: UploadFile) -> str:
    """Validate and persist an uploaded image; return its public URL path."""
    settings = get_settings()
    suffix = Path(file.filename or "").suffix.lower()
    content_type = file.content_type or ""
    if not content_type.startswith("image/") or suffix not in _ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=415,
            detail=ErrorDetail(
                code="unsupported_media_type",
                message="Upload must be a JPEG, PNG, GIF or WebP image.",
            ).model_dump(),
        )

    # Read one byte past the limit so oversize files are detected without
    # buffering them whole.
    raw = await file.read(settings.max_upload_bytes + 1)
    if len(raw) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Upload must be {settings.max_upload_bytes // 1024} KB or smaller.",
            ).model_dump(),
        )

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    name = f"{secrets.token_hex(16)}{suffix}"
    (upload_dir / name).write_bytes(raw)
    logger.info("Stored upload %s (%d bytes)", name, len(raw))
    return f"{UPLOAD_URL_PREFIX}/{name}"


def discard_upload(url: str) -> None:
    """Delete a file previously returned by save_image(). Missing files are ignored."""
    name = url.rsplit("/", 1)[-1]
    (Path(get_settings().upload_dir) / name).unlink(missing_ok=True)
    logger.info("Discarded upload %s", name)

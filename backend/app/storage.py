# Saves uploaded images under settings.upload_dir, served back at /uploads.

import logging
import os
import uuid
from pathlib import Path
from fastapi import UploadFile

from .settings import settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")
CHUNK_SIZE = 1024 * 1024  # 1 MB stream

# Upload type -> subfolder
UPLOAD_FOLDERS = {
    "avatar": "avatars",
    "article": "articles",
    "event": "events",
    "gallery": "gallery",
}


class UploadError(Exception):
    """Base class for rejected uploads."""
    pass


class InvalidUploadTypeError(UploadError):
    pass


class InvalidFileTypeError(UploadError):
    pass


class FileTooLargeError(UploadError):
    pass


def _ensure_dir(folder: str) -> Path:
    path = Path(settings.upload_dir) / folder
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_image(upload_file: UploadFile, upload_type: str) -> dict:
    """
    Validates and stores an image, streaming it to disk in chunks.
    Returns the public path, the file name and the stored size.
    """
    folder = UPLOAD_FOLDERS.get(upload_type)
    if folder is None:
        raise InvalidUploadTypeError(
            f'Invalid type "{upload_type}". Must be one of: {", ".join(UPLOAD_FOLDERS)}'
        )

    content_type = (upload_file.content_type or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidFileTypeError(
            f"Unsupported file type: {content_type or 'unknown'}. Only jpg, png, webp and gif are allowed."
        )

    ext = os.path.splitext(upload_file.filename or "")[1].lower() or ".jpg"
    file_name = f"{uuid.uuid4()}{ext}"
    path = _ensure_dir(folder) / file_name

    max_bytes = settings.max_upload_bytes
    total = 0
    try:
        with open(path, "wb") as f:
            while True:
                chunk = upload_file.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise FileTooLargeError(
                        f"File too large: more than {max_bytes // (1024 * 1024)}MB."
                    )
                f.write(chunk)
    except UploadError:
        path.unlink(missing_ok=True)
        raise
    except OSError as e:
        path.unlink(missing_ok=True)
        raise UploadError(f"Could not store file: {e!s}")

    relative = f"/uploads/{folder}/{file_name}"
    logger.info(f"Stored {upload_type} upload {relative} ({total} bytes)")
    return {"path": relative, "url": relative, "fileName": file_name, "fileSize": total}

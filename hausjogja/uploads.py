# uploads.py
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile, status

from hausjogja.settings import Settings

logger = logging.getLogger(__name__)

PRODUCT_IMAGES = "products"
PROFILE_IMAGES = "profile"


def _upload_root(settings: Settings) -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


async def save_image(
    upload: Optional[UploadFile],
    subdir: str,
    settings: Settings,
) -> Optional[str]:
    """
    Stores an uploaded image on disk and returns its public path
    (e.g. `/uploads/products/image-<uuid>.png`).

    Returns None when no file was sent. Rejects anything that is not a
    jpg/jpeg/png/gif or exceeds `UPLOAD_MAX_MB`.
    """
    if upload is None or not upload.filename:
        return None

    file_extension = os.path.splitext(upload.filename)[1].lower()
    if file_extension not in settings.ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only image files are allowed!")

    max_bytes = settings.UPLOAD_MAX_MB * 1024 * 1024
    too_large = HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Image exceeds the {settings.UPLOAD_MAX_MB}MB size limit.",
    )
    if upload.size is not None and upload.size > max_bytes:
        raise too_large

    # Never buffer more than one byte past the limit.
    contents = await upload.read(max_bytes + 1)
    if len(contents) > max_bytes:
        raise too_large

    # Generate a unique filename to prevent overwrites
    unique_filename = f"image-{uuid.uuid4().hex}{file_extension}"
    target_dir = _upload_root(settings) / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / unique_filename).write_bytes(contents)

    public_path = f"{settings.UPLOAD_URL_PREFIX}/{subdir}/{unique_filename}"
    logger.info(f"Stored upload {upload.filename!r} as {public_path}")
    return public_path


def remove_image(public_path: Optional[str], settings: Settings) -> bool:
    """
    Deletes the file behind a public upload path.

    Runs after the database write has committed, so it never raises: a
    failure is logged and the request carries on.
    """
    if not public_path or public_path == settings.DEFAULT_PROFILE_IMAGE:
        return False

    prefix = settings.UPLOAD_URL_PREFIX.rstrip("/") + "/"
    if not public_path.startswith(prefix):
        return False

    root = _upload_root(settings)
    target = (root / public_path[len(prefix):]).resolve()
    if root not in target.parents:
        logger.warning(f"Refusing to delete {public_path}: outside the upload directory.")
        return False

    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete old upload {public_path}: {e}")
        return False

    logger.info(f"Deleted old upload {public_path}")
    return True

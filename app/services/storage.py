"""Local storage for submitted images."""

import logging
import os
import re
import uuid
from typing import Iterable, List

from fastapi import UploadFile

from app.config import settings
from app.schemas.job import ImageRef

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def repair_filename(name: str) -> str:
    """
    Undo latin-1 mis-decoding of UTF-8 multipart filenames.

    Browsers send UTF-8 bytes which some parsers expose as latin-1 text;
    names that are already correct are returned unchanged.
    """
    try:
        return name.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name


def safe_filename(name: str) -> str:
    """Strip directory parts and characters unsafe on common filesystems."""
    base = os.path.basename(name.replace("\\", "/"))
    base = re.sub(r"[^\w.\- ]", "_", base).strip(" .")
    return base or "image"


def save_upload(upload: UploadFile, upload_dir: str = None) -> ImageRef:
    """Write an uploaded image to disk and return its reference."""
    upload_dir = upload_dir or settings.UPLOAD_DIR
    os.makedirs(upload_dir, exist_ok=True)

    display_name = repair_filename(upload.filename or "image")
    path = os.path.join(upload_dir, f"{uuid.uuid4().hex}_{safe_filename(display_name)}")

    with open(path, "wb") as out_file:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            out_file.write(chunk)

    logger.info(f"Stored upload {display_name} at {path}")
    return ImageRef(storage_path=path, display_name=display_name)


def delete_files(paths: Iterable[str]) -> List[str]:
    """
    Delete local files, logging individual failures instead of raising.

    Returns:
        Paths that could not be deleted
    """
    failed = []
    for path in paths:
        try:
            os.remove(path)
            logger.debug(f"Deleted {path}")
        except FileNotFoundError:
            logger.warning(f"File already gone: {path}")
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
            failed.append(path)
    return failed

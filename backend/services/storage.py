"""
Local-disk storage for uploaded medical documents.

Files land in settings.UPLOAD_DIR under a generated name and are served by
the application from /uploads.
"""
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile

from config import settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png"}
ALLOWED_CONTENT_TYPES = {"application/pdf", "image/jpeg", "image/jpg", "image/png"}
UPLOAD_URL_PREFIX = "/uploads"


def allowed_file(filename: str, content_type: Optional[str] = None) -> bool:
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        return False
    return content_type is None or content_type in ALLOWED_CONTENT_TYPES


def upload_path(stored_name: str) -> Path:
    # only ever resolve plain file names inside the upload directory
    return settings.UPLOAD_DIR / os.path.basename(stored_name)


async def save_upload(file: UploadFile, prefix: str, max_mb: Optional[int] = None) -> dict:
    """
    Validate and store an uploaded file.

    Raises 400 for types other than PDF/JPG/PNG and 413 when the file is
    larger than `max_mb` megabytes (settings.MAX_UPLOAD_MB by default).

    Returns:
        {"stored_name", "url", "file_name", "file_size", "content_type"}
    """
    if not file or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not allowed_file(file.filename, file.content_type):
        raise HTTPException(status_code=400, detail="Only PDF, JPG and PNG files are allowed")

    content = await file.read()
    limit_mb = max_mb or settings.MAX_UPLOAD_MB
    if len(content) > limit_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {limit_mb}MB")

    ext = Path(file.filename).suffix.lower()
    stored_name = f"{prefix}-{uuid.uuid4()}{ext}"
    settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    upload_path(stored_name).write_bytes(content)
    logger.info("Stored upload %s (%s bytes)", stored_name, len(content))

    return {
        "stored_name": stored_name,
        "url": f"{UPLOAD_URL_PREFIX}/{stored_name}",
        "file_name": file.filename,
        "file_size": len(content),
        "content_type": file.content_type,
    }


def delete_upload(stored_name: str) -> bool:
    path = upload_path(stored_name)
    if not path.exists():
        return False
    path.unlink()
    return True


def list_uploads() -> list:
    if not settings.UPLOAD_DIR.exists():
        return []
    files = []
    for path in sorted(settings.UPLOAD_DIR.iterdir()):
        if path.is_file():
            files.append({
                "filename": path.name,
                "size": path.stat().st_size,
                "url": f"{UPLOAD_URL_PREFIX}/{path.name}",
            })
    return files

"""
app/api/dependencies.py

Shared FastAPI dependencies for upload requests.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

from fastapi import Depends, File, HTTPException, UploadFile, status

from app.config import UploadSettings, get_upload_settings
from uploads.types import UploadRequest

logger = logging.getLogger(__name__)


def _spool_to_staging(file: UploadFile, staging_dir: Path | None) -> tuple[Path, int]:
    if staging_dir is not None:
        staging_dir.mkdir(parents=True, exist_ok=True)
    fd, staged_name = tempfile.mkstemp(prefix="upload-", suffix=".tmp", dir=staging_dir)
    staged_path = Path(staged_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            shutil.copyfileobj(file.file, handle)
            size_bytes = handle.tell()
    except OSError:
        staged_path.unlink(missing_ok=True)
        raise
    return staged_path, size_bytes


def get_staged_upload(
    file: UploadFile = File(...),
    settings: UploadSettings = Depends(get_upload_settings),
) -> Generator[UploadRequest, None, None]:
    """
    Spool the multipart file to a staging file and describe it as an ``UploadRequest``.

    Whatever is still at the staging location once the request finishes is removed.
    """

    try:
        staged_path, size_bytes = _spool_to_staging(file, settings.staging_dir)
    except OSError as exc:
        logger.exception("Failed to stage uploaded file")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to stage uploaded file.",
        ) from exc
    finally:
        file.file.close()

    try:
        yield UploadRequest(
            original_name=file.filename or "",
            temporary_location=staged_path,
            declared_mime_type=file.content_type or "",
            size_bytes=size_bytes,
        )
    finally:
        staged_path.unlink(missing_ok=True)

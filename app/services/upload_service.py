"""
app/services/upload_service.py

Service layer for the upload endpoint.

Each call builds a fresh ``UploadIngestor`` against the shared storage root;
nothing mutable is shared between concurrent uploads.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import PurePosixPath

from app.config import get_storage_root, get_upload_settings
from uploads.ingestor import UploadIngestor
from uploads.types import StorageRoot, StoredFile, UploadConfig, UploadRequest

logger = logging.getLogger(__name__)


class UploadService:
    """
    Validates and stores uploads with one fixed ``UploadConfig``.
    """

    def __init__(
        self,
        *,
        storage_root: StorageRoot,
        config: UploadConfig,
        public_prefix: str = "/files",
    ) -> None:
        self._storage_root = storage_root
        self._config = config
        self._public_prefix = "/" + public_prefix.strip("/")

    def ingest(
        self,
        request: UploadRequest,
        *,
        base_name: str | None = None,
        extension: str = "",
    ) -> StoredFile:
        """
        Validate ``request`` and move it into storage.

        ``base_name`` defaults to the stem of the original file name.
        """

        ingestor = UploadIngestor(request, self._config, self._storage_root)
        if not base_name or not base_name.strip():
            base_name = PurePosixPath(request.original_name.replace("\\", "/")).stem or "upload"
        return ingestor.store(base_name, extension)

    def public_url(self, stored: StoredFile) -> str:
        return f"{self._public_prefix}/{stored.relative_path}"


@lru_cache(maxsize=1)
def get_upload_service() -> UploadService:
    """
    Build and cache the upload service with env-driven settings.
    """

    settings = get_upload_settings()
    logger.info(
        "Upload service configured for subdirectory '%s'",
        settings.subdirectory,
    )
    return UploadService(
        storage_root=get_storage_root(),
        config=settings.upload_config(),
        public_prefix=settings.public_prefix,
    )

"""
Upload ingestion: validate one submission, then move it into storage.

An ``UploadIngestor`` validates at construction time and has no side effects
until ``store`` is called. ``store`` is single-shot.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from uploads.errors import (
    FileTooLargeError,
    InvalidExtensionError,
    InvalidStateError,
    MalformedRequestError,
    MoveFailedError,
    StorageUnavailableError,
    UnsupportedMediaTypeError,
)
from uploads.logging_utils import log_event
from uploads.types import StorageRoot, StoredFile, UploadConfig, UploadRequest

logger = logging.getLogger(__name__)

_FORBIDDEN_NAME_CHARS = ("/", "\\", "\x00")


def new_upload_token() -> str:
    return uuid.uuid4().hex


def _coerce_request(request: UploadRequest | Mapping[str, Any]) -> UploadRequest:
    if isinstance(request, UploadRequest):
        return request
    if isinstance(request, Mapping):
        return UploadRequest.from_mapping(request)
    raise MalformedRequestError(
        "Invalid file object given.",
        received_type=type(request).__name__,
    )


def _clean_base_name(new_base_name: str) -> str:
    base_name = Path(new_base_name.replace("\\", "/")).name.strip()
    if not base_name or base_name == ".." or "\x00" in base_name:
        raise MalformedRequestError("A valid base name is required to store the upload.", base_name=new_base_name)
    return base_name


def _move_into_place(source: Path, destination: Path) -> None:
    """
    Move ``source`` to ``destination`` so that other processes only ever see the
    complete file. Across filesystems the bytes are copied to a part-file next to
    the destination and renamed over it.
    """

    try:
        os.replace(source, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise

    part_path = destination.with_name(f".{destination.name}.part")
    try:
        with source.open("rb") as src, part_path.open("xb") as dst:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())
        os.replace(part_path, destination)
    finally:
        if part_path.exists():
            try:
                part_path.unlink()
            except OSError:
                logger.warning("Could not remove partial upload %s", part_path)

    try:
        source.unlink()
    except OSError:
        # The file is already in place; a leftover staging copy is harmless.
        logger.warning("Could not remove staged upload %s after copy", source)


class UploadIngestor:
    """
    Validates then persists one uploaded file.

    Construction raises ``MalformedRequestError``, ``UnsupportedMediaTypeError``
    or ``FileTooLargeError`` and touches nothing on disk.
    """

    def __init__(
        self,
        request: UploadRequest | Mapping[str, Any],
        config: UploadConfig,
        storage_root: StorageRoot,
        *,
        token_factory: Callable[[], str] = new_upload_token,
    ) -> None:
        self._config = config
        self._storage_root = storage_root
        self._token_factory = token_factory
        self._stored: StoredFile | None = None

        try:
            self._request = _coerce_request(request)
            self._validate_mime()
            self._validate_size()
        except (MalformedRequestError, UnsupportedMediaTypeError, FileTooLargeError) as exc:
            log_event(logger, logging.INFO, "upload_rejected", code=exc.code, **exc.context)
            raise

        log_event(
            logger,
            logging.DEBUG,
            "upload_validated",
            original_name=self._request.original_name,
            size_bytes=self._request.size_bytes,
            mime_type=self._request.declared_mime_type,
        )

    @property
    def request(self) -> UploadRequest:
        return self._request

    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def effective_size_limit(self) -> int:
        if self._config.max_file_size_bytes:
            return self._config.max_file_size_bytes
        return self._storage_root.default_max_upload_size()

    @property
    def stored_file(self) -> StoredFile:
        if self._stored is None:
            raise InvalidStateError("Upload has not been stored yet.")
        return self._stored

    @property
    def absolute_path(self) -> Path:
        return self.stored_file.absolute_path

    @property
    def relative_path(self) -> str:
        return self.stored_file.relative_path

    def _validate_mime(self) -> None:
        allowed = self._config.allowed_mime_types
        if not allowed:
            return
        declared = self._request.declared_mime_type
        if declared not in allowed:
            raise UnsupportedMediaTypeError(
                "Invalid file type uploaded.",
                declared_mime_type=declared,
                allowed_mime_types=sorted(allowed),
            )

    def _validate_size(self) -> None:
        limit = self.effective_size_limit
        if not self._request.size_bytes < limit:
            raise FileTooLargeError(
                "File size exceeded the limit.",
                size_bytes=self._request.size_bytes,
                limit_bytes=limit,
            )

    def _resolve_target_dir(self) -> Path:
        subdirectory = self._config.storage_subdirectory
        target_dir = self._storage_root.resolve(subdirectory)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(
                "Failed to generate upload path.",
                subdirectory=subdirectory,
            ) from exc
        return target_dir

    def _resolve_extension(self, extension: str) -> str:
        if extension:
            resolved = extension
        else:
            _, dot, resolved = self._request.original_name.rpartition(".")
            if not dot or not resolved:
                raise InvalidExtensionError(
                    "Invalid extension.",
                    original_name=self._request.original_name,
                )

        if any(char in resolved for char in _FORBIDDEN_NAME_CHARS):
            raise InvalidExtensionError("Invalid extension.", extension=resolved)
        return resolved

    def store(self, new_base_name: str, extension: str = "") -> StoredFile:
        """
        Move the staged file into ``<storage root>/<subdirectory>`` as
        ``<new_base_name>_<token>.<extension>``.

        The extension defaults to the suffix of the original file name.
        """

        if self._stored is not None:
            raise InvalidStateError(
                "Upload has already been stored.",
                relative_path=self._stored.relative_path,
            )

        base_name = _clean_base_name(new_base_name)
        self._resolve_target_dir()
        resolved_extension = self._resolve_extension(extension)

        generated_name = f"{base_name}_{self._token_factory()}.{resolved_extension}"
        subdirectory = self._config.storage_subdirectory
        relative_path = f"{subdirectory}/{generated_name}" if subdirectory else generated_name
        absolute_path = self._storage_root.resolve(relative_path)

        try:
            _move_into_place(self._request.temporary_location, absolute_path)
        except OSError as exc:
            log_event(
                logger,
                logging.WARNING,
                "upload_move_failed",
                relative_path=relative_path,
                error=exc.strerror or str(exc),
            )
            raise MoveFailedError(
                "Failed to upload the file.",
                relative_path=relative_path,
            ) from exc

        self._stored = StoredFile(
            absolute_path=absolute_path,
            relative_path=relative_path,
            generated_name=generated_name,
            original_name=self._request.original_name,
            mime_type=self._request.declared_mime_type,
            size_bytes=self._request.size_bytes,
            stored_at=datetime.now(timezone.utc),
        )
        log_event(
            logger,
            logging.INFO,
            "upload_stored",
            relative_path=relative_path,
            size_bytes=self._request.size_bytes,
            mime_type=self._request.declared_mime_type,
        )
        logger.debug("Stored upload at %s", absolute_path)
        return self._stored

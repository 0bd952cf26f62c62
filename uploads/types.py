"""
Typed records used by the upload ingestion flow.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from uploads.errors import MalformedRequestError
from uploads.limits import DEFAULT_POST_MAX_SIZE, DEFAULT_UPLOAD_MAX_FILESIZE, supported_max_upload_size

# Keys of the raw multipart submission, in the order they are reported.
SUBMISSION_KEYS = ("name", "tmp_name", "type", "size")


@dataclass(frozen=True)
class UploadRequest:
    """
    One inbound file submission, decoded by the HTTP layer.

    ``declared_mime_type`` comes from the client and is never verified against
    the file bytes.
    """

    original_name: str
    temporary_location: Path
    declared_mime_type: str
    size_bytes: int

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("original_name", "temporary_location", "declared_mime_type", "size_bytes")
            if getattr(self, name) is None
        ]
        if missing:
            raise MalformedRequestError("Invalid file object given.", missing_fields=missing)
        not_text = [
            name for name in ("original_name", "declared_mime_type") if not isinstance(getattr(self, name), str)
        ]
        if not_text:
            raise MalformedRequestError("Upload name and type must be strings.", invalid_fields=not_text)
        if isinstance(self.size_bytes, bool) or not isinstance(self.size_bytes, int) or self.size_bytes < 0:
            raise MalformedRequestError(
                "Upload size must be a non-negative integer.",
                size_bytes=self.size_bytes,
            )
        try:
            temporary_location = Path(os.fspath(self.temporary_location))
        except TypeError as exc:
            raise MalformedRequestError(
                "Upload temporary location must be a path.",
                invalid_fields=["temporary_location"],
            ) from exc
        object.__setattr__(self, "temporary_location", temporary_location)

    @classmethod
    def from_mapping(cls, submission: Mapping[str, Any]) -> UploadRequest:
        """
        Build a request from the untyped ``name``/``tmp_name``/``type``/``size`` form.
        """

        missing = [key for key in SUBMISSION_KEYS if key not in submission]
        if missing:
            raise MalformedRequestError("Invalid file object given.", missing_fields=missing)

        raw_size = submission["size"]
        try:
            if isinstance(raw_size, (bool, float)):
                raise TypeError(f"size must be an integer, got {type(raw_size).__name__}")
            size_bytes = int(raw_size)
        except (TypeError, ValueError) as exc:
            raise MalformedRequestError(
                "Upload size must be a non-negative integer.",
                size_bytes=raw_size,
            ) from exc

        return cls(
            original_name=submission["name"],
            temporary_location=submission["tmp_name"],
            declared_mime_type=submission["type"],
            size_bytes=size_bytes,
        )


@dataclass(frozen=True)
class UploadConfig:
    """
    Per-ingestor constraints.

    ``max_file_size_bytes == 0`` defers to the storage root's default limit and
    an empty ``allowed_mime_types`` disables MIME validation.
    """

    max_file_size_bytes: int = 0
    allowed_mime_types: frozenset[str] = field(default_factory=frozenset)
    storage_subdirectory: str = ""

    def __post_init__(self) -> None:
        if self.max_file_size_bytes < 0:
            raise ValueError("max_file_size_bytes must be >= 0.")
        if not isinstance(self.allowed_mime_types, frozenset):
            object.__setattr__(self, "allowed_mime_types", frozenset(self.allowed_mime_types))
        object.__setattr__(
            self,
            "storage_subdirectory",
            normalize_subdirectory(self.storage_subdirectory),
        )

    @classmethod
    def build(
        cls,
        *,
        max_file_size_bytes: int = 0,
        allowed_mime_types: Iterable[str] = (),
        storage_subdirectory: str = "",
    ) -> UploadConfig:
        return cls(
            max_file_size_bytes=max_file_size_bytes,
            allowed_mime_types=frozenset(allowed_mime_types),
            storage_subdirectory=storage_subdirectory,
        )


def normalize_subdirectory(subdirectory: str) -> str:
    """
    Return a relative POSIX path segment, rejecting anything that escapes the root.
    """

    cleaned = subdirectory.strip().replace("\\", "/").strip("/")
    if not cleaned:
        return ""
    parts = cleaned.split("/")
    if any(part in {"", ".", ".."} for part in parts):
        raise ValueError(f"Storage subdirectory '{subdirectory}' must stay inside the storage root.")
    return "/".join(parts)


@dataclass(frozen=True)
class StorageRoot:
    """
    Process-wide storage settings, built once at startup and shared read-only.
    """

    upload_dir: Path
    max_upload_size_bytes: int = 0
    upload_max_filesize: str = DEFAULT_UPLOAD_MAX_FILESIZE
    post_max_size: str = DEFAULT_POST_MAX_SIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "upload_dir", Path(self.upload_dir))
        if self.max_upload_size_bytes < 0:
            raise ValueError("max_upload_size_bytes must be >= 0.")

    def default_max_upload_size(self) -> int:
        """
        Limit applied when an ingestor is configured with ``max_file_size_bytes == 0``.

        A file must fit both platform limits; a nonzero override can only lower that.
        """

        platform_limit = supported_max_upload_size(self.upload_max_filesize, self.post_max_size)
        if self.max_upload_size_bytes:
            return min(self.max_upload_size_bytes, platform_limit)
        return platform_limit

    def resolve(self, relative_path: str) -> Path:
        return self.upload_dir / relative_path


@dataclass(frozen=True)
class StoredFile:
    """
    Result of one successful ingestion.

    ``absolute_path`` is for local filesystem use only; ``relative_path`` is what
    gets persisted and served.
    """

    absolute_path: Path
    relative_path: str
    generated_name: str
    original_name: str
    mime_type: str
    size_bytes: int
    stored_at: datetime

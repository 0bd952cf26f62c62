"""
Exceptions raised by the upload ingestion flow.

Every failure carries a stable ``code`` so HTTP handlers and other callers can
branch on the failure kind without parsing messages.
"""

from __future__ import annotations

from typing import Any


class UploadError(Exception):
    """Base exception for upload ingestion failures."""

    code = "upload_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self), **self.context}


class MalformedRequestError(UploadError):
    """Raised when a submission is missing one of its required fields."""

    code = "malformed_request"


class UnsupportedMediaTypeError(UploadError):
    """Raised when the declared MIME type is not in the allow-list."""

    code = "unsupported_media_type"


class FileTooLargeError(UploadError):
    """Raised when the declared size is at or above the effective limit."""

    code = "file_too_large"


class StorageUnavailableError(UploadError):
    """Raised when the target directory is missing and cannot be created."""

    code = "storage_unavailable"


class InvalidExtensionError(UploadError):
    """Raised when no extension was supplied and none can be derived."""

    code = "invalid_extension"


class MoveFailedError(UploadError):
    """Raised when moving the staged file into storage fails."""

    code = "move_failed"


class InvalidStateError(UploadError):
    """Raised when an ingestor is used outside its Constructed -> Stored lifecycle."""

    code = "invalid_state"

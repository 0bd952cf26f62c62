"""
Upload ingestion exports.
"""

from uploads.errors import (
    FileTooLargeError,
    InvalidExtensionError,
    InvalidStateError,
    MalformedRequestError,
    MoveFailedError,
    StorageUnavailableError,
    UnsupportedMediaTypeError,
    UploadError,
)
from uploads.ingestor import UploadIngestor, new_upload_token
from uploads.limits import parse_size_string, supported_max_upload_size
from uploads.types import StorageRoot, StoredFile, UploadConfig, UploadRequest

__all__ = [
    "UploadIngestor",
    "UploadRequest",
    "UploadConfig",
    "StoredFile",
    "StorageRoot",
    "new_upload_token",
    "parse_size_string",
    "supported_max_upload_size",
    "UploadError",
    "MalformedRequestError",
    "UnsupportedMediaTypeError",
    "FileTooLargeError",
    "StorageUnavailableError",
    "InvalidExtensionError",
    "MoveFailedError",
    "InvalidStateError",
]

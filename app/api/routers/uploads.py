"""
app/api/routers/uploads.py

Upload HTTP endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, status

from app.api.dependencies import get_staged_upload
from app.schemas.uploads import UploadErrorResponse, UploadResponse
from app.services.upload_service import UploadService, get_upload_service
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
from uploads.types import UploadRequest

router = APIRouter(tags=["uploads"])

_STATUS_BY_ERROR: dict[type[UploadError], int] = {
    MalformedRequestError: status.HTTP_400_BAD_REQUEST,
    InvalidExtensionError: status.HTTP_400_BAD_REQUEST,
    UnsupportedMediaTypeError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    FileTooLargeError: status.HTTP_413_CONTENT_TOO_LARGE,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    MoveFailedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InvalidStateError: status.HTTP_409_CONFLICT,
}


def status_for_error(exc: UploadError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post(
    "/uploads",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": UploadErrorResponse},
        413: {"model": UploadErrorResponse},
        415: {"model": UploadErrorResponse},
    },
)
def upload_file(
    staged: UploadRequest = Depends(get_staged_upload),
    base_name: str | None = Form(default=None, description="Base name for the stored file"),
    extension: str = Form(default="", description="Extension without leading dot"),
    upload_service: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    """
    Validate one uploaded file and move it into storage.
    """

    try:
        stored = upload_service.ingest(staged, base_name=base_name, extension=extension)
    except UploadError as exc:
        raise HTTPException(
            status_code=status_for_error(exc),
            detail=exc.to_dict(),
        ) from exc

    return UploadResponse(
        relative_path=stored.relative_path,
        generated_name=stored.generated_name,
        url=upload_service.public_url(stored),
        mime_type=stored.mime_type,
        size_bytes=stored.size_bytes,
        stored_at=stored.stored_at,
    )

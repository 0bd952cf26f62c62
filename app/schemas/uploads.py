"""
app/schemas/uploads.py

Response schemas for upload endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """
    API response model for one stored upload.

    Only storage-relative locations are exposed; the absolute path stays server-side.
    """

    relative_path: str
    generated_name: str
    url: str
    mime_type: str
    size_bytes: int = Field(..., ge=0)
    stored_at: datetime


class UploadErrorResponse(BaseModel):
    """
    Shape of ``detail`` on failed uploads.
    """

    code: str
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    storage_ready: bool
    default_max_upload_bytes: int = Field(..., ge=0)

"""
app/schemas package marker.
"""

from app.schemas.uploads import HealthResponse, UploadErrorResponse, UploadResponse

__all__ = [
    "HealthResponse",
    "UploadErrorResponse",
    "UploadResponse",
]

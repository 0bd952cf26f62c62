"""
app/services package marker.
"""

from app.services.upload_service import UploadService, get_upload_service

__all__ = [
    "UploadService",
    "get_upload_service",
]

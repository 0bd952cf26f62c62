"""
app/api/routers package marker.
"""

from app.api.routers.uploads import router as uploads_router

__all__ = [
    "uploads_router",
]

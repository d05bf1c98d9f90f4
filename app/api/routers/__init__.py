"""
app/api/routers package marker.
"""

from app.api.routers.images import router as images_router
from app.api.routers.uploads import router as uploads_router

__all__ = [
    "images_router",
    "uploads_router",
]

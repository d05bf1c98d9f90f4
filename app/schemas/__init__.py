"""
app/schemas package marker.
"""

from app.schemas.uploads import (
    CatalogStatsResponse,
    UploadAcceptedResponse,
    UploadErrorDetail,
    UploadRecordResponse,
)

__all__ = [
    "CatalogStatsResponse",
    "UploadAcceptedResponse",
    "UploadErrorDetail",
    "UploadRecordResponse",
]

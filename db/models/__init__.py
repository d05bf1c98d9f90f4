"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.upload_record import UploadRecord, UploadStatus

__all__ = [
    "UploadRecord",
    "UploadStatus",
]

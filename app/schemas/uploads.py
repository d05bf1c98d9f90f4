"""
app/schemas/uploads.py

Request/response schemas for upload and catalog endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class UploadAcceptedResponse(BaseModel):
    """
    Acknowledgement for a committed upload.
    """

    success: bool = True
    message: str = "Upload successful"
    id: int = Field(..., ge=0)
    filename: str


class UploadErrorDetail(BaseModel):
    """
    Error body for rejected uploads.

    code is one of invalid_file, storage_failure, orphan_commit.
    """

    code: str
    message: str
    upload_id: int | None = None


class UploadRecordResponse(BaseModel):
    id: int
    owner_id: str
    title: str | None = None
    description: str | None = None
    tags: str | None = None
    filename: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CatalogStatsResponse(BaseModel):
    total_uploads: int = Field(..., ge=0)
    total_owners: int = Field(..., ge=0)
    storage_bytes: int = Field(..., ge=0)

"""
Validation helpers for the upload pipeline.
"""

from __future__ import annotations

from pathlib import Path

from db.repositories.errors import UploadValidationError
from db.repositories.types import UploadFileInput

ALLOWED_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".jfif",
    ".png",
    ".gif",
    ".bmp",
    ".webp",
    ".tif",
    ".tiff",
}
ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/pjpeg",
    "image/png",
    "image/gif",
    "image/bmp",
    "image/webp",
    "image/tiff",
    "application/octet-stream",
}
MAX_TEXT_LENGTHS = {
    "title": 255,
    "tags": 512,
}
MAX_OWNER_ID_LENGTH = 128


def validate_upload_payload(payload: UploadFileInput, *, max_bytes: int) -> None:
    """
    Validate an upload payload before any identifier is allocated.

    Decodability is not checked here; that is the canonicalizer's job.
    """

    if not payload.owner_id or not payload.owner_id.strip():
        raise UploadValidationError("owner_id is required.")

    if len(payload.owner_id) > MAX_OWNER_ID_LENGTH:
        raise UploadValidationError("owner_id is too long.")

    if not payload.file_name or not payload.file_name.strip():
        raise UploadValidationError("file_name is required.")

    extension = Path(payload.file_name).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UploadValidationError(
            f"Unsupported file type '{extension}'. Allowed: {sorted(ALLOWED_EXTENSIONS)}."
        )

    if payload.content_type and payload.content_type.lower() not in ALLOWED_CONTENT_TYPES:
        raise UploadValidationError(
            f"Unsupported content_type '{payload.content_type}'."
        )

    if not payload.content:
        raise UploadValidationError("Uploaded file content is empty.")

    if len(payload.content) > max_bytes:
        raise UploadValidationError("Uploaded file exceeds configured size limit.")

    for field_name, limit in MAX_TEXT_LENGTHS.items():
        value = getattr(payload, field_name)
        if value is not None and len(value) > limit:
            raise UploadValidationError(f"{field_name} exceeds {limit} characters.")

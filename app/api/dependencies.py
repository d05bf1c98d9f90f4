"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import File, Header, HTTPException, UploadFile, status

from db.repositories.validators import ALLOWED_CONTENT_TYPES, ALLOWED_EXTENSIONS

OWNER_HEADER = "X-Owner-Id"


def get_image_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Reject uploads that are neither named nor typed as an image.

    This is a cheap pre-check; the canonicalizer decides whether the bytes
    really are an image.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_image_filename = any(filename.endswith(ext) for ext in ALLOWED_EXTENSIONS)
    is_image_content_type = content_type in ALLOWED_CONTENT_TYPES and content_type.startswith("image/")

    if not is_image_filename and not is_image_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_file", "message": "Only image files are allowed."},
        )

    return file


def get_current_owner(x_owner_id: str | None = Header(default=None, alias=OWNER_HEADER)) -> str:
    """
    Resolve the authenticated owner identity.

    Authentication happens upstream; the gateway forwards the verified
    account id in the X-Owner-Id header.
    """

    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated owner.",
        )
    return owner_id

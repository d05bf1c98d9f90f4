"""
app/api/routers/uploads.py

Upload admission endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile, status

from app.api.dependencies import get_current_owner, get_image_upload
from app.schemas.uploads import UploadAcceptedResponse, UploadErrorDetail
from app.services.upload_orchestrator_service import (
    UploadOrchestratorService,
    get_upload_orchestrator_service,
)
from db.repositories.errors import (
    AllocationError,
    CatalogAppendError,
    ConversionError,
    StagingError,
    UploadValidationError,
)
from db.repositories.types import UploadFileInput

router = APIRouter(tags=["uploads"])


def _error(status_code: int, code: str, message: str, upload_id: int | None = None) -> HTTPException:
    detail = UploadErrorDetail(code=code, message=message, upload_id=upload_id)
    return HTTPException(status_code=status_code, detail=detail.model_dump(exclude_none=True))


@router.post("/api/upload", response_model=UploadAcceptedResponse)
def upload_image(
    file: UploadFile = Depends(get_image_upload),
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    tags: str | None = Form(default=None),
    owner_id: str = Depends(get_current_owner),
    orchestrator: UploadOrchestratorService = Depends(get_upload_orchestrator_service),
) -> UploadAcceptedResponse:
    """
    Admit one image into the catalog.
    """

    try:
        payload = UploadFileInput(
            owner_id=owner_id,
            file_name=file.filename or "",
            content=file.file.read(),
            content_type=file.content_type,
            title=title,
            description=description,
            tags=tags,
        )
        result = orchestrator.upload(payload)
    except (UploadValidationError, ConversionError) as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, "invalid_file", str(exc)) from exc
    except (AllocationError, StagingError) as exc:
        raise _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "storage_failure",
            "Upload could not be stored. Try again later.",
        ) from exc
    except CatalogAppendError as exc:
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "orphan_commit",
            "Upload was stored but could not be recorded.",
            upload_id=exc.upload_id,
        ) from exc
    finally:
        file.file.close()

    return UploadAcceptedResponse(id=result.upload_id, filename=result.filename)

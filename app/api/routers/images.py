"""
app/api/routers/images.py

Catalog read endpoints and owner delete.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse

from app.api.dependencies import get_current_owner
from app.schemas.uploads import CatalogStatsResponse, UploadRecordResponse
from app.services.catalog_query_service import CatalogQueryService, get_catalog_query_service
from db.repositories.errors import UploadNotFoundError, UploadPermissionError

router = APIRouter(tags=["images"])


@router.get("/data/{upload_id}", response_model=UploadRecordResponse)
def get_upload_data(
    upload_id: int,
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> UploadRecordResponse:
    try:
        record = service.get_upload(upload_id)
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return UploadRecordResponse.model_validate(record)


@router.get("/view/{upload_id}")
def view_upload(
    upload_id: int,
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> FileResponse:
    try:
        path = service.get_file_path(upload_id)
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FileResponse(path, media_type="image/png", filename=path.name)


@router.get("/search", response_model=list[UploadRecordResponse])
def search_uploads(
    q: str = Query(default="", description="Text matched against title, description and tags"),
    limit: int | None = Query(default=None, ge=1),
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> list[UploadRecordResponse]:
    return [UploadRecordResponse.model_validate(record) for record in service.search(q, limit=limit)]


@router.get("/newest", response_model=list[UploadRecordResponse])
def get_newest_uploads(
    limit: int | None = Query(default=None, ge=1),
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> list[UploadRecordResponse]:
    return [UploadRecordResponse.model_validate(record) for record in service.newest(limit=limit)]


@router.get("/myscape", response_model=list[UploadRecordResponse])
def get_uploads_from_user(
    owner_id: str = Depends(get_current_owner),
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> list[UploadRecordResponse]:
    return [UploadRecordResponse.model_validate(record) for record in service.uploads_for_owner(owner_id)]


@router.delete("/delete/{upload_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_upload(
    upload_id: int,
    owner_id: str = Depends(get_current_owner),
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> None:
    """
    Delete an upload; only its owner may do so.
    """

    try:
        service.delete_upload(upload_id, requester_id=owner_id)
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except UploadPermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/stats", response_model=CatalogStatsResponse)
def get_server_stats(
    service: CatalogQueryService = Depends(get_catalog_query_service),
) -> CatalogStatsResponse:
    stats = service.stats()
    return CatalogStatsResponse(
        total_uploads=stats.total_uploads,
        total_owners=stats.total_owners,
        storage_bytes=stats.storage_bytes,
    )

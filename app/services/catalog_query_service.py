"""
app/services/catalog_query_service.py

Read-side access to the catalog plus the paired record/file delete.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from app.config import get_upload_settings
from app.logging_utils import log_event, log_failure
from db.repositories.catalog import CatalogRepository, get_catalog_repository
from db.repositories.errors import FileStorageError, UploadNotFoundError, UploadPermissionError
from db.repositories.storage import FinalStore, LocalFinalStore
from db.repositories.types import CatalogRecord, CatalogStats

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


def _clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(limit, MAX_PAGE_SIZE))


class CatalogQueryService:
    """
    Lookup, search and listing over committed uploads.
    """

    def __init__(self, *, catalog: CatalogRepository, final_store: FinalStore) -> None:
        self._catalog = catalog
        self._final_store = final_store

    def get_upload(self, upload_id: int) -> CatalogRecord:
        record = self._catalog.get(upload_id)
        if record is None:
            raise UploadNotFoundError(f"Upload not found: {upload_id}")
        return record

    def get_file_path(self, upload_id: int) -> Path:
        """
        Path of the canonical file for a committed upload.
        """

        record = self.get_upload(upload_id)
        path = self._final_store.path_for(record.id)
        if not path.is_file():
            raise UploadNotFoundError(f"File for upload {upload_id} is missing.")
        return path

    def search(self, query: str, *, limit: int | None = None) -> list[CatalogRecord]:
        text = (query or "").strip()
        if not text:
            return []
        return self._catalog.find(text=text, newest_first=True, limit=_clamp_limit(limit))

    def newest(self, *, limit: int | None = None) -> list[CatalogRecord]:
        return self._catalog.find(newest_first=True, limit=_clamp_limit(limit))

    def uploads_for_owner(self, owner_id: str) -> list[CatalogRecord]:
        return self._catalog.find(owner_id=owner_id, newest_first=True)

    def stats(self) -> CatalogStats:
        return CatalogStats(
            total_uploads=self._catalog.count(),
            total_owners=self._catalog.count_owners(),
            storage_bytes=self._final_store.total_size_bytes(),
        )

    def delete_upload(self, upload_id: int, *, requester_id: str) -> CatalogRecord:
        """
        Remove a record and its final file.

        The record goes first so readers never see a record without a file;
        a file that cannot be removed afterwards is logged and left to
        reconciliation.
        """

        record = self.get_upload(upload_id)
        if record.owner_id != requester_id:
            raise UploadPermissionError(f"Upload {upload_id} belongs to another owner.")

        if not self._catalog.remove(upload_id):
            raise UploadNotFoundError(f"Upload not found: {upload_id}")

        try:
            self._final_store.delete(upload_id)
        except FileStorageError as exc:
            log_failure(logger, "upload_file_delete_failed", exc, upload_id=upload_id)
        log_event(logger, logging.INFO, "upload_deleted", upload_id=upload_id, owner_id=requester_id)
        return record


@lru_cache(maxsize=1)
def get_catalog_query_service() -> CatalogQueryService:
    settings = get_upload_settings()
    return CatalogQueryService(
        catalog=get_catalog_repository(),
        final_store=LocalFinalStore(settings.final_dir, canonical_extension=settings.canonical_extension),
    )

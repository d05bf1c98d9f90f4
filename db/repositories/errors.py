"""
Repository-layer exceptions for the upload admission pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from db.repositories.types import UploadRecordCreate


class UploadPipelineError(Exception):
    """Base exception for upload pipeline and catalog failures."""


class UploadValidationError(UploadPipelineError):
    """Raised when an inbound upload payload is rejected before allocation."""


class AllocationError(UploadPipelineError):
    """Raised when no identifier could be allocated."""


class StagingError(UploadPipelineError):
    """Raised when raw upload bytes could not be staged."""


class ConversionError(UploadPipelineError):
    """Raised when a staged file cannot be decoded or re-encoded."""


class FileStorageError(UploadPipelineError):
    """Raised when deleting or listing stored files fails."""


class CatalogError(UploadPipelineError):
    """Raised when the catalog cannot be written."""


class CatalogReadError(CatalogError):
    """Raised when the catalog cannot be read."""


class CatalogAppendError(CatalogError):
    """
    Raised when a record could not be appended.

    When raised by the upload pipeline the final file has already been
    written, so `final_path` points at an orphan and `record` holds the
    metadata needed to retry the commit under the same id.
    """

    def __init__(
        self,
        message: str,
        *,
        record: UploadRecordCreate | None = None,
        final_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.record = record
        self.final_path = final_path

    @property
    def upload_id(self) -> int | None:
        return self.record.id if self.record is not None else None


class UploadNotFoundError(UploadPipelineError):
    """Raised when a catalog record does not exist."""


class UploadPermissionError(UploadPipelineError):
    """Raised when a caller may not modify a catalog record."""

"""
Repository layer exports.
"""

from db.repositories.allocator import IdentifierAllocator
from db.repositories.catalog import Catalog, CatalogRepository, get_catalog_repository
from db.repositories.errors import (
    AllocationError,
    CatalogAppendError,
    CatalogError,
    CatalogReadError,
    ConversionError,
    FileStorageError,
    StagingError,
    UploadNotFoundError,
    UploadPermissionError,
    UploadPipelineError,
    UploadValidationError,
)
from db.repositories.storage import FinalStore, LocalFinalStore, LocalStagingStore, StagingStore
from db.repositories.types import (
    CanonicalFile,
    CatalogRecord,
    CatalogStats,
    ReconciliationReport,
    Reservation,
    StagedFile,
    UploadFileInput,
    UploadRecordCreate,
)

__all__ = [
    "Catalog",
    "CatalogRepository",
    "get_catalog_repository",
    "IdentifierAllocator",
    "StagingStore",
    "FinalStore",
    "LocalStagingStore",
    "LocalFinalStore",
    "UploadFileInput",
    "StagedFile",
    "CanonicalFile",
    "UploadRecordCreate",
    "CatalogRecord",
    "CatalogStats",
    "Reservation",
    "ReconciliationReport",
    "UploadPipelineError",
    "UploadValidationError",
    "AllocationError",
    "StagingError",
    "ConversionError",
    "FileStorageError",
    "CatalogError",
    "CatalogReadError",
    "CatalogAppendError",
    "UploadNotFoundError",
    "UploadPermissionError",
]

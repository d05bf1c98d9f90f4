"""
app/services package marker.
"""

from app.services.canonicalizer import ImageCanonicalizer
from app.services.catalog_query_service import CatalogQueryService, get_catalog_query_service
from app.services.reconciliation_service import (
    ReconciliationService,
    RepairSummary,
    build_reconciliation_service,
)
from app.services.upload_orchestrator_service import (
    UploadOrchestratorService,
    UploadResult,
    UploadStage,
    build_upload_orchestrator,
    get_upload_orchestrator_service,
)

__all__ = [
    "CatalogQueryService",
    "ImageCanonicalizer",
    "ReconciliationService",
    "RepairSummary",
    "UploadOrchestratorService",
    "UploadResult",
    "UploadStage",
    "build_reconciliation_service",
    "build_upload_orchestrator",
    "get_catalog_query_service",
    "get_upload_orchestrator_service",
]

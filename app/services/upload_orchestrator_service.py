"""
Upload admission pipeline.

One `upload()` call drives a request through

    RECEIVED -> ALLOCATED -> STAGED -> CANONICALIZED -> COMMITTED

and exits to REJECTED from any earlier state. Each stage's artifact (id
reservation, staged file, final file) is held in a scoped context that
removes it unless the pipeline reached the point where that artifact is
owned by the catalog. The one exception is a failed catalog append: the
final file and the reservation are kept and reported as an orphan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import lru_cache
from pathlib import Path

from app.config import get_upload_settings
from app.logging_utils import log_event, log_failure
from app.services.canonicalizer import ImageCanonicalizer
from db.base import utc_now
from db.repositories.allocator import IdentifierAllocator
from db.repositories.catalog import Catalog, CatalogRepository, get_catalog_repository
from db.repositories.errors import (
    CatalogAppendError,
    CatalogError,
    ConversionError,
    FileStorageError,
    UploadValidationError,
)
from db.repositories.storage import FinalStore, LocalFinalStore, LocalStagingStore, StagingStore
from db.repositories.types import (
    CanonicalFile,
    CatalogRecord,
    StagedFile,
    UploadFileInput,
    UploadRecordCreate,
)
from db.repositories.validators import validate_upload_payload

logger = logging.getLogger(__name__)

# Rejections caused by the uploaded content rather than by the service.
_CLIENT_ERRORS = (UploadValidationError, ConversionError)


class UploadStage(str, Enum):
    RECEIVED = "received"
    ALLOCATED = "allocated"
    STAGED = "staged"
    CANONICALIZED = "canonicalized"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class UploadResult:
    """
    Outcome of a committed upload.
    """

    upload_id: int
    filename: str
    record: CatalogRecord
    stages: list[UploadStage] = field(default_factory=list)


@dataclass
class _PipelineState:
    payload: UploadFileInput
    stage: UploadStage = UploadStage.RECEIVED
    upload_id: int | None = None
    orphaned: bool = False
    stages: list[UploadStage] = field(default_factory=lambda: [UploadStage.RECEIVED])

    def advance(self, stage: UploadStage) -> None:
        self.stage = stage
        self.stages.append(stage)


class UploadOrchestratorService:
    """
    Composes allocator, staging store, canonicalizer and catalog into one
    admission transaction per request.

    Instances hold no per-request state, so one instance can serve
    concurrent requests; the catalog is the only shared mutable resource.
    """

    def __init__(
        self,
        *,
        catalog: Catalog,
        allocator: IdentifierAllocator,
        staging_store: StagingStore,
        final_store: FinalStore,
        canonicalizer: ImageCanonicalizer,
        max_upload_bytes: int = 25 * 1024 * 1024,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._catalog = catalog
        self._allocator = allocator
        self._staging_store = staging_store
        self._final_store = final_store
        self._canonicalizer = canonicalizer
        self._max_upload_bytes = max_upload_bytes
        self._clock = clock

    def upload(self, payload: UploadFileInput) -> UploadResult:
        """
        Admit one upload.

        Raises UploadValidationError, AllocationError, StagingError,
        ConversionError or CatalogAppendError; on any of them except an
        orphaned CatalogAppendError nothing is left behind.
        """

        state = _PipelineState(payload=payload)
        try:
            validate_upload_payload(payload, max_bytes=self._max_upload_bytes)
            with self._reserved_id(state) as upload_id:
                with self._staged_file(state, upload_id) as staged:
                    with self._canonical_file(state, staged) as canonical:
                        self._discard_staged(staged)
                        record = self._commit(state, canonical)
        except BaseException as exc:
            self._log_rejection(state, exc)
            raise

        log_event(
            logger,
            logging.INFO,
            "upload_committed",
            upload_id=record.id,
            owner_id=record.owner_id,
            filename=record.filename,
            width=canonical.width,
            height=canonical.height,
        )
        return UploadResult(
            upload_id=record.id,
            filename=record.filename,
            record=record,
            stages=list(state.stages),
        )

    def retry_commit(self, record: UploadRecordCreate) -> CatalogRecord:
        """
        Re-run only the catalog append for an orphaned upload.

        The final file must still be present; the id is kept.
        """

        if not self._final_store.exists(record.id):
            raise FileStorageError(f"Final file for upload {record.id} is missing.")
        committed = self._catalog.append(record)
        log_event(
            logger,
            logging.INFO,
            "upload_orphan_recommitted",
            upload_id=record.id,
            owner_id=record.owner_id,
        )
        return committed

    # ── Stages ─────────────────────────────────────────────────────────────────

    @contextmanager
    def _reserved_id(self, state: _PipelineState) -> Iterator[int]:
        upload_id = self._allocator.allocate(state.payload.owner_id)
        state.upload_id = upload_id
        state.advance(UploadStage.ALLOCATED)
        log_event(logger, logging.DEBUG, "upload_allocated", upload_id=upload_id)
        try:
            yield upload_id
        except BaseException:
            if not state.orphaned:
                self._release_quietly(upload_id)
            raise

    @contextmanager
    def _staged_file(self, state: _PipelineState, upload_id: int) -> Iterator[StagedFile]:
        extension = Path(state.payload.file_name).suffix
        staged = self._staging_store.stage(upload_id, state.payload.content, extension)
        state.advance(UploadStage.STAGED)
        try:
            yield staged
        finally:
            self._discard_staged(staged)

    @contextmanager
    def _canonical_file(self, state: _PipelineState, staged: StagedFile) -> Iterator[CanonicalFile]:
        canonical = self._canonicalizer.canonicalize(staged)
        state.advance(UploadStage.CANONICALIZED)
        try:
            yield canonical
        except BaseException:
            if not state.orphaned:
                self._delete_final_quietly(canonical.upload_id)
            raise

    def _commit(self, state: _PipelineState, canonical: CanonicalFile) -> CatalogRecord:
        payload = state.payload
        record = UploadRecordCreate(
            id=canonical.upload_id,
            owner_id=payload.owner_id,
            title=payload.title,
            description=payload.description,
            tags=payload.tags,
            filename=canonical.filename,
            created_at=self._clock(),
        )
        try:
            committed = self._catalog.append(record)
        except CatalogAppendError as exc:
            state.orphaned = True
            log_event(
                logger,
                logging.ERROR,
                "upload_orphaned",
                upload_id=record.id,
                owner_id=record.owner_id,
                final_path=canonical.path,
                error=str(exc),
            )
            raise CatalogAppendError(
                f"Upload {record.id} was converted but could not be recorded in the catalog.",
                record=record,
                final_path=canonical.path,
            ) from exc
        state.advance(UploadStage.COMMITTED)
        return committed

    # ── Cleanup ────────────────────────────────────────────────────────────────

    def _discard_staged(self, staged: StagedFile) -> None:
        try:
            self._staging_store.delete(staged)
        except FileStorageError as exc:
            log_failure(logger, "staged_cleanup_failed", exc, upload_id=staged.upload_id)

    def _delete_final_quietly(self, upload_id: int) -> None:
        try:
            self._final_store.delete(upload_id)
        except FileStorageError as exc:
            log_failure(logger, "final_cleanup_failed", exc, upload_id=upload_id)

    def _release_quietly(self, upload_id: int) -> None:
        try:
            self._catalog.release(upload_id)
        except CatalogError as exc:
            log_failure(logger, "reservation_release_failed", exc, upload_id=upload_id)

    def _log_rejection(self, state: _PipelineState, exc: BaseException) -> None:
        failed_at = state.stage
        state.advance(UploadStage.REJECTED)
        if state.orphaned:
            return
        log_failure(
            logger,
            "upload_rejected",
            exc,
            level=logging.INFO if isinstance(exc, _CLIENT_ERRORS) else logging.WARNING,
            upload_id=state.upload_id,
            owner_id=state.payload.owner_id,
            failed_after=failed_at.value,
        )


def build_upload_orchestrator(
    *,
    catalog: CatalogRepository | None = None,
    final_dir: str | Path | None = None,
    staging_dir: str | Path | None = None,
) -> UploadOrchestratorService:
    """
    Wire the pipeline from environment settings.
    """

    settings = get_upload_settings()
    catalog = catalog or get_catalog_repository()
    final_store = LocalFinalStore(
        final_dir or settings.final_dir,
        canonical_extension=settings.canonical_extension,
    )
    staging_store = LocalStagingStore(staging_dir or settings.staging_dir)
    allocator = IdentifierAllocator(
        catalog,
        id_min=settings.id_min,
        id_max=settings.id_max,
        max_attempts=settings.max_allocation_attempts,
        warn_attempts=settings.allocation_warn_attempts,
        filename_for=final_store.filename_for,
        occupied=final_store.exists,
    )
    canonicalizer = ImageCanonicalizer(
        final_store,
        image_format=settings.canonical_format,
        max_image_pixels=settings.max_image_pixels,
    )
    return UploadOrchestratorService(
        catalog=catalog,
        allocator=allocator,
        staging_store=staging_store,
        final_store=final_store,
        canonicalizer=canonicalizer,
        max_upload_bytes=settings.max_upload_bytes,
    )


@lru_cache(maxsize=1)
def get_upload_orchestrator_service() -> UploadOrchestratorService:
    """
    Build and cache the orchestrator with env-driven settings.
    """

    return build_upload_orchestrator()

"""
app/services/reconciliation_service.py

Detects and repairs divergence between the catalog and the file stores.

The upload pipeline tolerates exactly one divergence on its own (a final
file whose catalog append failed). Crashes between steps can additionally
leave id reservations and staged files behind. This pass finds all of them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from app.config import get_catalog_settings, get_upload_settings
from app.logging_utils import log_event, log_failure
from db.base import utc_now
from db.repositories.catalog import CatalogRepository, get_catalog_repository
from db.repositories.errors import CatalogError, FileStorageError
from db.repositories.storage import FinalStore, LocalFinalStore, LocalStagingStore, StagingStore
from db.repositories.types import ReconciliationReport

logger = logging.getLogger(__name__)


@dataclass
class RepairSummary:
    deleted_files: list[int] = field(default_factory=list)
    released_reservations: list[int] = field(default_factory=list)
    deleted_staged: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list]:
        return {
            "deleted_files": self.deleted_files,
            "released_reservations": self.released_reservations,
            "deleted_staged": [path.as_posix() for path in self.deleted_staged],
            "errors": self.errors,
        }


class ReconciliationService:
    def __init__(
        self,
        *,
        catalog: CatalogRepository,
        final_store: FinalStore,
        staging_store: StagingStore,
        stale_after: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._catalog = catalog
        self._final_store = final_store
        self._staging_store = staging_store
        self._stale_after = stale_after
        self._clock = clock

    def scan(self) -> ReconciliationReport:
        """
        Compare the catalog with both stores without changing anything.

        Ids that are still reserved and younger than `stale_after` may belong
        to in-flight uploads, so their final files are listed as pending
        rather than orphaned and are never repaired. A failed commit shows up
        there immediately and moves to orphaned once its reservation is stale.

        The stores are listed before the catalog is read. Files are only
        written under an id that is already reserved, so every listed file's
        id is reserved or committed in the snapshot unless it was abandoned.
        """

        final_ids = set(self._final_store.list_ids())
        staged_paths = self._staging_store.list_entries()
        committed_ids, reservations = self._catalog.snapshot()

        cutoff = self._clock() - self._stale_after
        in_flight = {item.id for item in reservations if item.reserved_at > cutoff}
        stale = sorted(item.id for item in reservations if item.reserved_at <= cutoff)

        report = ReconciliationReport(
            orphaned_files=sorted(final_ids - committed_ids - in_flight),
            missing_files=sorted(committed_ids - final_ids),
            pending_files=sorted(final_ids & in_flight),
            stale_reservations=stale,
            leftover_staged=[path for path in staged_paths if _staged_upload_id(path) not in in_flight],
        )
        log_event(logger, logging.INFO, "reconciliation_scanned", **report.to_dict())
        return report

    def repair(self, report: ReconciliationReport) -> RepairSummary:
        """
        Delete orphan and leftover staged files and release stale reservations.

        Committed records are never removed; `missing_files` is report-only.
        """

        summary = RepairSummary()
        stale_ids = set(report.stale_reservations)
        for upload_id in report.stale_reservations:
            try:
                # Release first: a reservation that committed since the scan is
                # left alone together with its file.
                if not self._catalog.release(upload_id):
                    log_event(logger, logging.INFO, "reservation_no_longer_pending", upload_id=upload_id)
                    continue
                summary.released_reservations.append(upload_id)
                if self._final_store.exists(upload_id):
                    self._final_store.delete(upload_id)
                    summary.deleted_files.append(upload_id)
            except (FileStorageError, CatalogError) as exc:
                summary.errors.append(str(exc))
                log_failure(logger, "reservation_release_failed", exc, upload_id=upload_id)

        for upload_id in report.orphaned_files:
            if upload_id in stale_ids:
                continue
            try:
                self._final_store.delete(upload_id)
                summary.deleted_files.append(upload_id)
            except FileStorageError as exc:
                summary.errors.append(str(exc))
                log_failure(logger, "orphan_delete_failed", exc, upload_id=upload_id)

        for path in report.leftover_staged:
            try:
                path.unlink(missing_ok=True)
                summary.deleted_staged.append(path)
            except OSError as exc:
                summary.errors.append(f"{path}: {exc}")
                log_failure(logger, "staged_delete_failed", exc, path=path)

        log_event(
            logger,
            logging.INFO,
            "reconciliation_repaired",
            deleted_files=len(summary.deleted_files),
            released_reservations=len(summary.released_reservations),
            deleted_staged=len(summary.deleted_staged),
            errors=len(summary.errors),
        )
        return summary


def _staged_upload_id(path: Path) -> int | None:
    stem = path.name.lstrip(".").split(".", 1)[0]
    return int(stem) if stem.isdigit() else None


def build_reconciliation_service(*, stale_after_minutes: int | None = None) -> ReconciliationService:
    upload_settings = get_upload_settings()
    catalog_settings = get_catalog_settings()
    minutes = stale_after_minutes or catalog_settings.stale_reservation_minutes
    return ReconciliationService(
        catalog=get_catalog_repository(),
        final_store=LocalFinalStore(
            upload_settings.final_dir,
            canonical_extension=upload_settings.canonical_extension,
        ),
        staging_store=LocalStagingStore(upload_settings.staging_dir),
        stale_after=timedelta(minutes=minutes),
    )

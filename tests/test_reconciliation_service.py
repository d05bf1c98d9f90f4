"""
tests/test_reconciliation_service.py

Reconciliation scan and repair against a real catalog and temp stores.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.services.reconciliation_service import ReconciliationService
from db.base import utc_now
from db.repositories.catalog import CatalogRepository
from db.repositories.storage import LocalFinalStore, LocalStagingStore
from db.repositories.types import UploadRecordCreate


def _write_final(final_store: LocalFinalStore, upload_id: int) -> None:
    final_store.root_dir.mkdir(parents=True, exist_ok=True)
    final_store.path_for(upload_id).write_bytes(b"\x89PNG fake")


def _commit(catalog: CatalogRepository, upload_id: int) -> None:
    catalog.append(
        UploadRecordCreate(
            id=upload_id,
            owner_id="U1",
            filename=f"{upload_id}.png",
            created_at=utc_now(),
        )
    )


@pytest.fixture()
def make_service(
    catalog: CatalogRepository,
    final_store: LocalFinalStore,
    staging_store: LocalStagingStore,
):
    def _factory(*, clock_offset: timedelta = timedelta(0)) -> ReconciliationService:
        return ReconciliationService(
            catalog=catalog,
            final_store=final_store,
            staging_store=staging_store,
            stale_after=timedelta(hours=1),
            clock=lambda: utc_now() + clock_offset,
        )

    return _factory


def test_consistent_state_is_clean(make_service, catalog, final_store) -> None:
    _commit(catalog, 11111)
    _write_final(final_store, 11111)

    report = make_service().scan()

    assert report.is_clean
    assert report.to_dict()["is_clean"] is True


def test_final_file_without_record_is_orphaned(make_service, final_store) -> None:
    _write_final(final_store, 22222)

    service = make_service()
    report = service.scan()

    assert report.orphaned_files == [22222]
    assert not report.is_clean

    summary = service.repair(report)

    assert summary.deleted_files == [22222]
    assert not final_store.exists(22222)
    assert service.scan().is_clean


def test_record_without_file_is_reported_but_kept(make_service, catalog) -> None:
    _commit(catalog, 33333)

    service = make_service()
    report = service.scan()

    assert report.missing_files == [33333]
    service.repair(report)
    assert catalog.get(33333) is not None


def test_recent_reservation_with_file_is_pending(make_service, catalog, final_store) -> None:
    catalog.reserve(44444, owner_id="U1", filename="44444.png")
    _write_final(final_store, 44444)

    report = make_service().scan()

    assert report.pending_files == [44444]
    assert report.orphaned_files == []
    assert report.stale_reservations == []
    assert report.is_clean


def test_stale_reservation_is_released_with_its_file(make_service, catalog, final_store) -> None:
    catalog.reserve(55555, owner_id="U1", filename="55555.png")
    _write_final(final_store, 55555)

    service = make_service(clock_offset=timedelta(hours=2))
    report = service.scan()

    assert report.stale_reservations == [55555]
    assert report.orphaned_files == [55555]

    summary = service.repair(report)

    assert summary.released_reservations == [55555]
    assert summary.errors == []
    assert catalog.ids() == set()
    assert not final_store.exists(55555)


def test_leftover_staged_files_are_removed(make_service, catalog, staging_store) -> None:
    staging_store.stage(66666, b"raw bytes", ".jpg")
    catalog.reserve(77777, owner_id="U1", filename="77777.png")
    in_flight = staging_store.stage(77777, b"raw bytes", ".jpg")

    service = make_service()
    report = service.scan()

    assert [path.name for path in report.leftover_staged] == ["66666.jpg"]

    service.repair(report)

    assert staging_store.list_entries() == [in_flight.path]


def test_upload_committing_during_scan_keeps_its_file(
    make_service,
    catalog,
    final_store,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    catalog.reserve(12345, owner_id="U1", filename="12345.png")
    _write_final(final_store, 12345)
    list_ids = final_store.list_ids

    def _list_then_commit() -> list[int]:
        listed = list_ids()
        _commit(catalog, 12345)
        return listed

    monkeypatch.setattr(final_store, "list_ids", _list_then_commit)
    service = make_service()
    report = service.scan()

    assert report.orphaned_files == []
    assert report.missing_files == []

    service.repair(report)

    assert catalog.get(12345) is not None
    assert final_store.exists(12345)


def test_stale_reservation_committed_before_repair_is_left_alone(make_service, catalog, final_store) -> None:
    catalog.reserve(55555, owner_id="U1", filename="55555.png")
    _write_final(final_store, 55555)
    service = make_service(clock_offset=timedelta(hours=2))
    report = service.scan()
    assert report.stale_reservations == [55555]

    _commit(catalog, 55555)
    summary = service.repair(report)

    assert summary.released_reservations == []
    assert summary.deleted_files == []
    assert catalog.get(55555) is not None
    assert final_store.exists(55555)

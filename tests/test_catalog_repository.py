"""
tests/test_catalog_repository.py

SQLAlchemy catalog: reservations, atomic append, reads and failures.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db.repositories.catalog import CatalogRepository
from db.repositories.errors import CatalogAppendError, CatalogReadError
from db.repositories.types import UploadRecordCreate

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(upload_id: int, *, owner_id: str = "U1", minutes: int = 0, **fields: str) -> UploadRecordCreate:
    return UploadRecordCreate(
        id=upload_id,
        owner_id=owner_id,
        filename=f"{upload_id}.png",
        created_at=BASE_TIME + timedelta(minutes=minutes),
        title=fields.get("title"),
        description=fields.get("description"),
        tags=fields.get("tags"),
    )


class TestReservations:
    def test_reserve_is_compare_and_insert(self, catalog: CatalogRepository) -> None:
        assert catalog.reserve(12345, owner_id="U1", filename="12345.png") is True
        assert catalog.reserve(12345, owner_id="U2", filename="12345.png") is False
        assert catalog.ids() == {12345}

    def test_reservations_are_invisible_to_readers(self, catalog: CatalogRepository) -> None:
        catalog.reserve(12345, owner_id="U1", filename="12345.png")

        assert catalog.all() == []
        assert catalog.get(12345) is None
        assert [item.id for item in catalog.reservations()] == [12345]

    def test_release_drops_only_reservations(self, catalog: CatalogRepository) -> None:
        catalog.reserve(11111, owner_id="U1", filename="11111.png")
        catalog.append(_record(22222))

        assert catalog.release(11111) is True
        assert catalog.release(22222) is False
        assert catalog.release(11111) is False

        assert catalog.ids() == {22222}
        assert catalog.get(22222) is not None

    def test_reserved_at_is_timezone_aware(self, catalog: CatalogRepository) -> None:
        catalog.reserve(12345, owner_id="U1", filename="12345.png")

        (reservation,) = catalog.reservations()

        assert reservation.reserved_at.tzinfo is not None

    def test_snapshot_splits_committed_and_reserved(self, catalog: CatalogRepository) -> None:
        catalog.reserve(11111, owner_id="U1", filename="11111.png")
        catalog.append(_record(22222))

        committed, reservations = catalog.snapshot()

        assert committed == {22222}
        assert [item.id for item in reservations] == [11111]
        assert reservations[0].reserved_at.tzinfo is not None


class TestAppend:
    def test_append_promotes_reservation(self, catalog: CatalogRepository) -> None:
        catalog.reserve(12345, owner_id="U1", filename="12345.png")

        committed = catalog.append(_record(12345, title="cat", description="a cat", tags="animal"))

        assert committed.id == 12345
        assert catalog.reservations() == []
        stored = catalog.get(12345)
        assert stored == committed
        assert stored.to_dict() == {
            "id": 12345,
            "owner_id": "U1",
            "title": "cat",
            "description": "a cat",
            "tags": "animal",
            "filename": "12345.png",
            "created_at": BASE_TIME.isoformat(),
        }

    def test_append_without_reservation_inserts(self, catalog: CatalogRepository) -> None:
        catalog.append(_record(12345))

        assert [record.id for record in catalog.all()] == [12345]

    def test_append_of_committed_id_is_rejected(self, catalog: CatalogRepository) -> None:
        catalog.append(_record(12345, title="first"))

        with pytest.raises(CatalogAppendError) as ctx:
            catalog.append(_record(12345, title="second"))

        assert ctx.value.upload_id == 12345
        assert catalog.get(12345).title == "first"

    def test_remove(self, catalog: CatalogRepository) -> None:
        catalog.append(_record(12345))
        catalog.reserve(54321, owner_id="U1", filename="54321.png")

        assert catalog.remove(12345) is True
        assert catalog.remove(12345) is False
        assert catalog.remove(54321) is False
        assert catalog.ids() == {54321}


class TestQueries:
    @pytest.fixture()
    def populated(self, catalog: CatalogRepository) -> CatalogRepository:
        catalog.append(_record(11111, owner_id="U1", minutes=0, title="Cat nap", tags="animal"))
        catalog.append(_record(22222, owner_id="U2", minutes=1, title="Sunset", tags="sky,ANIMAL"))
        catalog.append(_record(33333, owner_id="U1", minutes=2, title="100% dog", description="Good boy"))
        catalog.reserve(44444, owner_id="U3", filename="44444.png")
        return catalog

    def test_all_is_ordered_by_commit_time(self, populated: CatalogRepository) -> None:
        assert [record.id for record in populated.all()] == [11111, 22222, 33333]

    def test_text_search_is_case_insensitive(self, populated: CatalogRepository) -> None:
        assert [record.id for record in populated.find(text="animal")] == [11111, 22222]
        assert [record.id for record in populated.find(text="BOY")] == [33333]

    def test_like_wildcards_are_literal(self, populated: CatalogRepository) -> None:
        assert [record.id for record in populated.find(text="100%")] == [33333]
        assert populated.find(text="%") == [populated.get(33333)]

    def test_owner_filter_and_newest_first(self, populated: CatalogRepository) -> None:
        records = populated.find(owner_id="U1", newest_first=True)
        assert [record.id for record in records] == [33333, 11111]

    def test_limit(self, populated: CatalogRepository) -> None:
        assert [record.id for record in populated.find(newest_first=True, limit=1)] == [33333]

    def test_count_ignores_reservations(self, populated: CatalogRepository) -> None:
        assert populated.count() == 3

    def test_count_owners_ignores_reservations(self, populated: CatalogRepository) -> None:
        assert populated.count_owners() == 2


class TestFailures:
    @pytest.fixture()
    def broken_catalog(self, tmp_path: Path) -> CatalogRepository:
        # No tables are created, so every statement fails.
        engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        return CatalogRepository(session_factory=sessionmaker(bind=engine))

    def test_reads_raise_catalog_read_error(self, broken_catalog: CatalogRepository) -> None:
        with pytest.raises(CatalogReadError):
            broken_catalog.all()
        with pytest.raises(CatalogReadError):
            broken_catalog.ids()
        with pytest.raises(CatalogReadError):
            broken_catalog.count()
        with pytest.raises(CatalogReadError):
            broken_catalog.snapshot()

    def test_append_raises_catalog_append_error(self, broken_catalog: CatalogRepository) -> None:
        with pytest.raises(CatalogAppendError) as ctx:
            broken_catalog.append(_record(12345))

        assert ctx.value.record is not None

"""
Catalog repository: the authoritative ledger of committed uploads.

Identifier reservations and committed records share one table keyed by the
upload id, so "allocate and reserve" is a primary-key compare-and-insert and
committing is a single-row promotion inside one transaction.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Protocol

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from db.base import utc_now
from db.models.upload_record import UploadRecord, UploadStatus
from db.repositories.errors import CatalogAppendError, CatalogError, CatalogReadError
from db.repositories.types import CatalogRecord, Reservation, UploadRecordCreate

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    """
    Catalog operations used by the upload pipeline and its readers.
    """

    def reserve(self, upload_id: int, *, owner_id: str, filename: str) -> bool:
        ...

    def release(self, upload_id: int) -> bool:
        ...

    def append(self, record: UploadRecordCreate) -> CatalogRecord:
        ...

    def all(self) -> list[CatalogRecord]:
        ...

    def get(self, upload_id: int) -> CatalogRecord | None:
        ...

    def remove(self, upload_id: int) -> bool:
        ...

    def ids(self) -> set[int]:
        ...


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on DateTime(timezone=True) columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_catalog_record(row: UploadRecord) -> CatalogRecord:
    return CatalogRecord(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description,
        tags=row.tags,
        filename=row.filename,
        created_at=_as_utc(row.created_at or row.reserved_at),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogRepository:
    """
    SQLAlchemy-backed catalog with a single-writer lock.

    All mutations (reserve, release, append, remove) run under one
    `threading.Lock`; reads take a fresh session. Record readers only
    ever see committed rows; `reservations()` and `snapshot()` are for
    reconciliation.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._clock = clock
        self._write_lock = threading.Lock()

    # ── Reservations ───────────────────────────────────────────────────────────

    def reserve(self, upload_id: int, *, owner_id: str, filename: str) -> bool:
        """
        Atomically claim `upload_id` if no row (reserved or committed) holds it.

        Returns False on collision.
        """

        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    if session.get(UploadRecord, upload_id) is not None:
                        return False
                    session.add(
                        UploadRecord(
                            id=upload_id,
                            owner_id=owner_id,
                            filename=filename,
                            status=UploadStatus.RESERVED,
                            reserved_at=self._clock(),
                        )
                    )
            except IntegrityError:
                # Another process inserted the same id between our check and flush.
                logger.debug("Upload id %s reserved concurrently by another writer", upload_id)
                return False
            except SQLAlchemyError as exc:
                raise CatalogError(f"Failed to reserve upload id {upload_id}.") from exc
        return True

    def release(self, upload_id: int) -> bool:
        """
        Drop a reservation. Committed records are never touched.

        Returns False when no reservation for `upload_id` was pending.
        """

        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    result = session.execute(
                        delete(UploadRecord).where(
                            UploadRecord.id == upload_id,
                            UploadRecord.status == UploadStatus.RESERVED,
                        )
                    )
            except SQLAlchemyError as exc:
                raise CatalogError(f"Failed to release upload id {upload_id}.") from exc
        return bool(result.rowcount)

    def reservations(self) -> list[Reservation]:
        stmt = (
            select(UploadRecord)
            .where(UploadRecord.status == UploadStatus.RESERVED)
            .order_by(UploadRecord.reserved_at, UploadRecord.id)
        )
        try:
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
                return [
                    Reservation(id=row.id, owner_id=row.owner_id, reserved_at=_as_utc(row.reserved_at))
                    for row in rows
                ]
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to read catalog reservations.") from exc

    def snapshot(self) -> tuple[set[int], list[Reservation]]:
        """
        Committed ids and pending reservations read in one statement.

        Both views reflect the same instant, so an id that moves from
        reserved to committed is seen in exactly one of them.
        """

        stmt = select(UploadRecord.id, UploadRecord.status, UploadRecord.owner_id, UploadRecord.reserved_at)
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to read catalog snapshot.") from exc

        committed = {row.id for row in rows if row.status == UploadStatus.COMMITTED}
        reservations = sorted(
            (
                Reservation(id=row.id, owner_id=row.owner_id, reserved_at=_as_utc(row.reserved_at))
                for row in rows
                if row.status == UploadStatus.RESERVED
            ),
            key=lambda item: (item.reserved_at, item.id),
        )
        return committed, reservations

    # ── Writes ─────────────────────────────────────────────────────────────────

    def append(self, record: UploadRecordCreate) -> CatalogRecord:
        """
        Commit one record in a single transaction.

        A pending reservation for the same id is promoted in place; without
        one a committed row is inserted directly. An id that is already
        committed is a collision and raises CatalogAppendError.
        """

        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    row = session.get(UploadRecord, record.id)
                    if row is None:
                        row = UploadRecord(id=record.id, reserved_at=record.created_at)
                        session.add(row)
                    elif row.status == UploadStatus.COMMITTED:
                        raise CatalogAppendError(
                            f"Upload id {record.id} is already committed.",
                            record=record,
                        )
                    row.owner_id = record.owner_id
                    row.title = record.title
                    row.description = record.description
                    row.tags = record.tags
                    row.filename = record.filename
                    row.created_at = record.created_at
                    row.status = UploadStatus.COMMITTED
                    session.flush()
                    committed = _to_catalog_record(row)
            except CatalogAppendError:
                raise
            except SQLAlchemyError as exc:
                raise CatalogAppendError(
                    f"Failed to append upload {record.id} to the catalog.",
                    record=record,
                ) from exc
        return committed

    def remove(self, upload_id: int) -> bool:
        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    result = session.execute(
                        delete(UploadRecord).where(
                            UploadRecord.id == upload_id,
                            UploadRecord.status == UploadStatus.COMMITTED,
                        )
                    )
            except SQLAlchemyError as exc:
                raise CatalogError(f"Failed to remove upload {upload_id}.") from exc
        return bool(result.rowcount)

    # ── Reads ──────────────────────────────────────────────────────────────────

    def all(self) -> list[CatalogRecord]:
        return self.find()

    def get(self, upload_id: int) -> CatalogRecord | None:
        try:
            with self._session_factory() as session:
                row = session.get(UploadRecord, upload_id)
                if row is None or row.status != UploadStatus.COMMITTED:
                    return None
                return _to_catalog_record(row)
        except SQLAlchemyError as exc:
            raise CatalogReadError(f"Failed to read upload {upload_id}.") from exc

    def ids(self) -> set[int]:
        """
        Every id currently held by the catalog, reserved or committed.
        """

        try:
            with self._session_factory() as session:
                return set(session.scalars(select(UploadRecord.id)).all())
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to read catalog ids.") from exc

    def find(
        self,
        *,
        owner_id: str | None = None,
        text: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[CatalogRecord]:
        """
        Query committed records.

        `text` matches title, description or tags case-insensitively.
        """

        stmt = select(UploadRecord).where(UploadRecord.status == UploadStatus.COMMITTED)
        if owner_id is not None:
            stmt = stmt.where(UploadRecord.owner_id == owner_id)
        if text:
            pattern = f"%{_escape_like(text.strip().lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(UploadRecord.title).like(pattern, escape="\\"),
                    func.lower(UploadRecord.description).like(pattern, escape="\\"),
                    func.lower(UploadRecord.tags).like(pattern, escape="\\"),
                )
            )
        if newest_first:
            stmt = stmt.order_by(UploadRecord.created_at.desc(), UploadRecord.id.desc())
        else:
            stmt = stmt.order_by(UploadRecord.created_at, UploadRecord.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            with self._session_factory() as session:
                return [_to_catalog_record(row) for row in session.scalars(stmt).all()]
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to query the catalog.") from exc

    def count(self) -> int:
        stmt = select(func.count()).select_from(UploadRecord).where(
            UploadRecord.status == UploadStatus.COMMITTED
        )
        try:
            with self._session_factory() as session:
                return int(session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to count catalog records.") from exc

    def count_owners(self) -> int:
        stmt = select(func.count(func.distinct(UploadRecord.owner_id))).where(
            UploadRecord.status == UploadStatus.COMMITTED
        )
        try:
            with self._session_factory() as session:
                return int(session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise CatalogReadError("Failed to count catalog owners.") from exc


@lru_cache(maxsize=1)
def get_catalog_repository() -> CatalogRepository:
    """
    Process-wide catalog bound to `SessionLocal`.

    Every service in the process shares this instance and with it the
    single writer lock.
    """

    return CatalogRepository()

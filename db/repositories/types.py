"""
Typed DTOs used by the upload pipeline and catalog readers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class UploadFileInput:
    """
    Inbound payload for one upload request.
    """

    owner_id: str
    file_name: str
    content: bytes
    title: str | None = None
    description: str | None = None
    tags: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class StagedFile:
    """
    Raw upload bytes persisted in the staging directory.
    """

    upload_id: int
    path: Path
    extension: str
    size_bytes: int
    checksum: str


@dataclass(frozen=True)
class CanonicalFile:
    """
    Canonical image written to the final store.
    """

    upload_id: int
    filename: str
    path: Path
    width: int
    height: int
    size_bytes: int


@dataclass(frozen=True)
class UploadRecordCreate:
    """
    Fully populated record ready to be appended to the catalog.
    """

    id: int
    owner_id: str
    filename: str
    created_at: datetime
    title: str | None = None
    description: str | None = None
    tags: str | None = None


@dataclass(frozen=True)
class CatalogRecord:
    """
    Immutable view of one committed catalog record.

    This is the stable shape handed to search, listing and delete consumers.
    """

    id: int
    owner_id: str
    title: str | None
    description: str | None
    tags: str | None
    filename: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "tags": self.tags,
            "filename": self.filename,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Reservation:
    """
    An allocated identifier that has not been committed yet.
    """

    id: int
    owner_id: str
    reserved_at: datetime


@dataclass(frozen=True)
class CatalogStats:
    total_uploads: int
    total_owners: int
    storage_bytes: int


@dataclass
class ReconciliationReport:
    """
    Divergences between the catalog and the staging/final stores.
    """

    orphaned_files: list[int] = field(default_factory=list)
    missing_files: list[int] = field(default_factory=list)
    pending_files: list[int] = field(default_factory=list)
    stale_reservations: list[int] = field(default_factory=list)
    leftover_staged: list[Path] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.orphaned_files
            or self.missing_files
            or self.stale_reservations
            or self.leftover_staged
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "orphaned_files": self.orphaned_files,
            "missing_files": self.missing_files,
            "pending_files": self.pending_files,
            "stale_reservations": self.stale_reservations,
            "leftover_staged": [path.as_posix() for path in self.leftover_staged],
            "is_clean": self.is_clean,
        }

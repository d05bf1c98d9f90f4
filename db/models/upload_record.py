"""
db/models/upload_record.py

UploadRecord model: one row per allocated upload identifier.

A row starts life as an id reservation (status=reserved) written by the
identifier allocator and becomes a catalog record (status=committed) only
when the upload pipeline commits it.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, ReservedAtMixin


class UploadStatus:
    """Valid status values for an upload row."""

    RESERVED = "reserved"
    COMMITTED = "committed"


class UploadRecord(Base, ReservedAtMixin):
    """
    Metadata for one uploaded image.

    filename is always "<id>.<canonical-ext>" and points into the final
    store. Reserved rows carry only id, owner_id, filename and reserved_at;
    they are never exposed to catalog readers.
    """

    __tablename__ = "upload_records"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
    )

    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Identity of the uploading account",
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    tags: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
        comment="User-supplied labels, stored as submitted",
    )

    filename: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Canonical file name in the final store",
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=UploadStatus.RESERVED,
        comment="reserved → committed",
    )

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Commit timestamp; null while reserved",
    )

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        Index("ix_upload_records_owner_id", "owner_id"),
        Index("ix_upload_records_status", "status"),
        Index("ix_upload_records_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UploadRecord id={self.id} owner_id={self.owner_id!r} "
            f"status={self.status!r} filename={self.filename!r}>"
        )

"""Snapshot models: one append-only table per blob kind."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, DateTime, Integer, LargeBinary, String, func
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.models.base import Base

# MySQL's plain BLOB tops out at 64 KiB.
_PAYLOAD_TYPE = LargeBinary().with_variant(mysql.LONGBLOB(), "mysql")


class BlobKind(StrEnum):
    """Which of the two synchronized resources a snapshot belongs to."""

    DB = "db"
    UPLOADS = "uploads"


class SnapshotRow:
    """Columns shared by every snapshot table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    content_hash: Mapped[str] = mapped_column("sha256", String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)


class DbSnapshot(SnapshotRow, Base):
    """Pushed SQLite database file."""

    __tablename__ = "sync_snapshots"

    payload: Mapped[bytes] = mapped_column("sqlite_blob", _PAYLOAD_TYPE, nullable=False)


class UploadsSnapshot(SnapshotRow, Base):
    """Pushed zip archive of the uploads directory."""

    __tablename__ = "uploads_snapshots"

    payload: Mapped[bytes] = mapped_column("zip_blob", _PAYLOAD_TYPE, nullable=False)


SNAPSHOT_MODELS: dict[BlobKind, type[DbSnapshot] | type[UploadsSnapshot]] = {
    BlobKind.DB: DbSnapshot,
    BlobKind.UPLOADS: UploadsSnapshot,
}

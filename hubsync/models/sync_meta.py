"""Last-push metadata model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.models.base import Base

# Logical identity of the one metadata record.
SINGLETON_KEY = "sync"


class SyncMeta(Base):
    """Provenance of the most recent push of each blob kind.

    Exactly one row exists, addressed by ``singleton_key``. Column names follow the
    ``last_<kind>_<field>`` pattern so that a push can address its own columns by kind.
    """

    __tablename__ = "sync_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    singleton_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    last_db_pushed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_db_pushed_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    last_db_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_db_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    last_uploads_pushed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_uploads_pushed_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    last_uploads_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_uploads_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Null until the first push.
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

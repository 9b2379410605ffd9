"""Metadata tracker: the singleton record of who pushed what, and when."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from hubsync.exceptions import StorageError
from hubsync.models.snapshot import BlobKind
from hubsync.models.sync_meta import SINGLETON_KEY, SyncMeta

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlalchemy.sql.expression import Insert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushRecord:
    """Provenance of the last push of one blob kind. All fields are None until a push."""

    pushed_by: str | None = None
    pushed_at: str | None = None
    content_hash: str | None = None
    size_bytes: int | None = None


@dataclass(frozen=True)
class SyncMetadataView:
    """Read-only view of the whole metadata record."""

    kinds: dict[BlobKind, PushRecord] = field(
        default_factory=lambda: {kind: PushRecord() for kind in BlobKind}
    )
    updated_at: datetime | None = None

    def for_kind(self, kind: BlobKind) -> PushRecord:
        return self.kinds.get(kind, PushRecord())


def _columns(kind: BlobKind) -> dict[str, str]:
    prefix = f"last_{kind.value}"
    return {
        "pushed_by": f"{prefix}_pushed_by",
        "pushed_at": f"{prefix}_pushed_at",
        "content_hash": f"{prefix}_sha256",
        "size_bytes": f"{prefix}_size_bytes",
    }


def _insert_singleton(dialect_name: str) -> Insert:
    """Build an INSERT that is a no-op when the singleton row already exists."""
    if dialect_name == "sqlite":
        return (
            sqlite.insert(SyncMeta)
            .values(singleton_key=SINGLETON_KEY)
            .on_conflict_do_nothing(index_elements=["singleton_key"])
        )
    if dialect_name == "postgresql":
        return (
            postgresql.insert(SyncMeta)
            .values(singleton_key=SINGLETON_KEY)
            .on_conflict_do_nothing(index_elements=["singleton_key"])
        )
    if dialect_name in {"mysql", "mariadb"}:
        return mysql.insert(SyncMeta).values(singleton_key=SINGLETON_KEY).prefix_with("IGNORE")
    msg = f"Unsupported database dialect for sync metadata: {dialect_name}"
    raise NotImplementedError(msg)


class MetadataTracker:
    """Maintains the single ``sync_meta`` record.

    The table and its one row are created on demand; both steps are idempotent, so
    concurrent first requests cannot produce a second row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._ready = False

    async def _ensure_singleton(self, session: AsyncSession) -> None:
        if self._ready:
            return
        conn = await session.connection()
        await conn.run_sync(
            lambda sync_conn: SyncMeta.__table__.create(sync_conn, checkfirst=True)
        )
        await session.execute(_insert_singleton(conn.dialect.name))
        await session.commit()
        self._ready = True

    async def record_push(
        self,
        kind: BlobKind,
        pushed_by: str,
        pushed_at: str,
        content_hash: str,
        size_bytes: int,
    ) -> None:
        """Overwrite the provenance fields of ``kind``; other kinds are left untouched."""
        cols = _columns(kind)
        values: dict[str, Any] = {
            cols["pushed_by"]: pushed_by,
            cols["pushed_at"]: pushed_at,
            cols["content_hash"]: content_hash,
            cols["size_bytes"]: size_bytes,
            "updated_at": func.now(),
        }
        try:
            async with self._session_factory() as session:
                await self._ensure_singleton(session)
                await session.execute(
                    update(SyncMeta)
                    .where(SyncMeta.singleton_key == SINGLETON_KEY)
                    .values(values)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to record %s push metadata: %s", kind, exc)
            raise StorageError("Failed to update sync metadata") from exc

        logger.info("Recorded %s push by %s at %s", kind, pushed_by, pushed_at)

    async def read(self) -> SyncMetadataView:
        """Return the metadata record, or an empty view if it holds nothing yet."""
        try:
            async with self._session_factory() as session:
                await self._ensure_singleton(session)
                result = await session.execute(
                    select(SyncMeta).where(SyncMeta.singleton_key == SINGLETON_KEY)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to read sync metadata: %s", exc)
            raise StorageError("Failed to read sync metadata") from exc

        if row is None:
            return SyncMetadataView()

        kinds: dict[BlobKind, PushRecord] = {}
        for kind in BlobKind:
            cols = _columns(kind)
            kinds[kind] = PushRecord(
                pushed_by=getattr(row, cols["pushed_by"]),
                pushed_at=getattr(row, cols["pushed_at"]),
                content_hash=getattr(row, cols["content_hash"]),
                size_bytes=getattr(row, cols["size_bytes"]),
            )
        return SyncMetadataView(kinds=kinds, updated_at=row.updated_at)

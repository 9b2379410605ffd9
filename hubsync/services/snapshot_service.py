"""Snapshot store: append-only blob tables, newest row wins."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from hubsync.exceptions import NotFoundError, StorageError
from hubsync.models.snapshot import SNAPSHOT_MODELS, BlobKind

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_EMPTY_MESSAGES = {
    BlobKind.DB: "No snapshot available",
    BlobKind.UPLOADS: "No uploads snapshot available",
}


@dataclass(frozen=True)
class AppendResult:
    """Outcome of storing one pushed payload."""

    content_hash: str
    size_bytes: int
    id: int


@dataclass(frozen=True)
class Snapshot:
    """A stored snapshot as returned by ``SnapshotStore.latest``."""

    id: int
    created_at: datetime
    content_hash: str
    size_bytes: int
    payload: bytes


def compute_content_hash(payload: bytes) -> str:
    """Compute SHA-256 hex digest of a payload."""
    return hashlib.sha256(payload).hexdigest()


class SnapshotStore:
    """Durable, append-only storage of pushed snapshots, one table per blob kind.

    Tables are created on first use of a kind. Every operation runs in its own
    session; no transaction spans calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._ready: set[BlobKind] = set()

    async def _ensure_table(self, session: AsyncSession, kind: BlobKind) -> None:
        if kind in self._ready:
            return
        table = SNAPSHOT_MODELS[kind].__table__
        conn = await session.connection()
        await conn.run_sync(lambda sync_conn: table.create(sync_conn, checkfirst=True))
        await session.commit()
        self._ready.add(kind)
        logger.debug("Snapshot table %s ready", table.name)

    async def append(self, kind: BlobKind, payload: bytes) -> AppendResult:
        """Store a new snapshot of ``kind`` and return its hash, size and id."""
        content_hash = compute_content_hash(payload)
        size_bytes = len(payload)
        model = SNAPSHOT_MODELS[kind]
        try:
            async with self._session_factory() as session:
                await self._ensure_table(session, kind)
                row = model(content_hash=content_hash, size_bytes=size_bytes, payload=payload)
                session.add(row)
                await session.flush()
                snapshot_id = row.id
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to store %s snapshot (%d bytes): %s", kind, size_bytes, exc)
            raise StorageError(f"Failed to store {kind} snapshot") from exc

        logger.info(
            "Stored %s snapshot id=%d size=%d sha256=%s",
            kind,
            snapshot_id,
            size_bytes,
            content_hash[:12],
        )
        return AppendResult(content_hash=content_hash, size_bytes=size_bytes, id=snapshot_id)

    async def latest(self, kind: BlobKind) -> Snapshot:
        """Return the snapshot of ``kind`` with the greatest id.

        Raises NotFoundError if nothing has been pushed for ``kind`` yet.
        """
        model = SNAPSHOT_MODELS[kind]
        try:
            async with self._session_factory() as session:
                await self._ensure_table(session, kind)
                result = await session.execute(select(model).order_by(model.id.desc()).limit(1))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to read latest %s snapshot: %s", kind, exc)
            raise StorageError(f"Failed to read {kind} snapshot") from exc

        if row is None:
            raise NotFoundError(_EMPTY_MESSAGES[kind])
        return Snapshot(
            id=row.id,
            created_at=row.created_at,
            content_hash=row.content_hash,
            size_bytes=row.size_bytes,
            payload=row.payload,
        )

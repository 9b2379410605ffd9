"""SQLAlchemy ORM models for HubSync."""

from hubsync.models.base import Base
from hubsync.models.snapshot import BlobKind, DbSnapshot, SnapshotRow, UploadsSnapshot
from hubsync.models.sync_meta import SINGLETON_KEY, SyncMeta

__all__ = [
    "SINGLETON_KEY",
    "Base",
    "BlobKind",
    "DbSnapshot",
    "SnapshotRow",
    "SyncMeta",
    "UploadsSnapshot",
]

"""Snapshot push/pull endpoints and last-sync metadata."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from hubsync.api.deps import (
    get_metadata_tracker,
    get_settings,
    get_snapshot_store,
    require_sync_token,
)
from hubsync.config import Settings
from hubsync.exceptions import PayloadTooLargeError, ValidationError
from hubsync.models.snapshot import BlobKind
from hubsync.schemas.sync import (
    LastSyncResponse,
    Provenance,
    PushDbResponse,
    PushRecordResponse,
    PushUploadsResponse,
)
from hubsync.services.datetime_service import default_pushed_at, format_iso
from hubsync.services.metadata_service import MetadataTracker, PushRecord
from hubsync.services.snapshot_service import AppendResult, SnapshotStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"], dependencies=[Depends(require_sync_token)])

DEFAULT_DEVICE_NAME = "Unknown"

# Column widths of the sync_meta provenance fields.
_MAX_DEVICE_NAME_LENGTH = 255
_MAX_PUSHED_AT_LENGTH = 40


@dataclass(frozen=True)
class _KindTransport:
    """How a blob kind travels over HTTP."""

    form_field: str
    media_type: str
    filename: str


_TRANSPORT = {
    BlobKind.DB: _KindTransport(
        form_field="db", media_type="application/x-sqlite3", filename="learninghub.sqlite"
    ),
    BlobKind.UPLOADS: _KindTransport(
        form_field="zip", media_type="application/zip", filename="uploads.zip"
    ),
}


def _record_response(record: PushRecord) -> PushRecordResponse:
    return PushRecordResponse(
        by=record.pushed_by,
        at=record.pushed_at,
        sha256=record.content_hash,
        size_bytes=record.size_bytes,
    )


def _provenance(device_name: str | None, pushed_at: str | None) -> Provenance:
    """Fill in provenance defaults and enforce the stored column widths.

    Blank values, after trimming, count as absent.
    """
    by = (device_name or "").strip() or DEFAULT_DEVICE_NAME
    at = (pushed_at or "").strip() or default_pushed_at()
    if len(by) > _MAX_DEVICE_NAME_LENGTH:
        raise ValidationError(f"device_name exceeds {_MAX_DEVICE_NAME_LENGTH} characters")
    if len(at) > _MAX_PUSHED_AT_LENGTH:
        raise ValidationError(f"pushed_at exceeds {_MAX_PUSHED_AT_LENGTH} characters")
    return Provenance(by=by, at=at)


async def _read_upload(kind: BlobKind, upload: UploadFile | None, max_bytes: int) -> bytes:
    field = _TRANSPORT[kind].form_field
    if upload is None:
        raise ValidationError(f'Missing file field "{field}"')
    payload = await upload.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise PayloadTooLargeError(f'File field "{field}" exceeds {max_bytes} bytes')
    return payload


async def _push(
    kind: BlobKind,
    upload: UploadFile | None,
    device_name: str | None,
    pushed_at: str | None,
    *,
    store: SnapshotStore,
    tracker: MetadataTracker,
    settings: Settings,
) -> tuple[AppendResult, Provenance]:
    """Store the payload, then record its provenance.

    The two writes are separate transactions: if the metadata update fails the
    snapshot row stays, and pulls already serve it.
    """
    payload = await _read_upload(kind, upload, settings.max_upload_bytes)
    provenance = _provenance(device_name, pushed_at)

    result = await store.append(kind, payload)
    await tracker.record_push(
        kind,
        pushed_by=provenance.by,
        pushed_at=provenance.at,
        content_hash=result.content_hash,
        size_bytes=result.size_bytes,
    )
    return result, provenance


async def _pull(kind: BlobKind, store: SnapshotStore) -> Response:
    snapshot = await store.latest(kind)
    transport = _TRANSPORT[kind]
    logger.info("Serving %s snapshot id=%d size=%d", kind, snapshot.id, snapshot.size_bytes)
    return Response(
        content=snapshot.payload,
        media_type=transport.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{transport.filename}"',
            "X-SHA256": snapshot.content_hash,
            "X-Size-Bytes": str(snapshot.size_bytes),
        },
    )


# ── Endpoints ────────────────────────────────────────


@router.get("/last_sync", response_model=LastSyncResponse)
async def last_sync(
    tracker: Annotated[MetadataTracker, Depends(get_metadata_tracker)],
) -> LastSyncResponse:
    """Show the last push of each blob kind."""
    view = await tracker.read()
    return LastSyncResponse(
        last_db=_record_response(view.for_kind(BlobKind.DB)),
        last_uploads=_record_response(view.for_kind(BlobKind.UPLOADS)),
        updated_at=format_iso(view.updated_at) if view.updated_at is not None else None,
    )


@router.post("/push", response_model=PushDbResponse)
async def push_db(
    store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
    tracker: Annotated[MetadataTracker, Depends(get_metadata_tracker)],
    settings: Annotated[Settings, Depends(get_settings)],
    db: Annotated[UploadFile | None, File()] = None,
    device_name: Annotated[str | None, Form()] = None,
    pushed_at: Annotated[str | None, Form()] = None,
) -> PushDbResponse:
    """Upload a new database snapshot."""
    result, provenance = await _push(
        BlobKind.DB,
        db,
        device_name,
        pushed_at,
        store=store,
        tracker=tracker,
        settings=settings,
    )
    return PushDbResponse(
        sha256=result.content_hash, size_bytes=result.size_bytes, last_db=provenance
    )


@router.get("/pull")
async def pull_db(
    store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
) -> Response:
    """Download the newest database snapshot."""
    return await _pull(BlobKind.DB, store)


@router.post("/push_uploads", response_model=PushUploadsResponse)
async def push_uploads(
    store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
    tracker: Annotated[MetadataTracker, Depends(get_metadata_tracker)],
    settings: Annotated[Settings, Depends(get_settings)],
    upload: Annotated[UploadFile | None, File(alias="zip")] = None,
    device_name: Annotated[str | None, Form()] = None,
    pushed_at: Annotated[str | None, Form()] = None,
) -> PushUploadsResponse:
    """Upload a new archive of the uploads directory."""
    result, provenance = await _push(
        BlobKind.UPLOADS,
        upload,
        device_name,
        pushed_at,
        store=store,
        tracker=tracker,
        settings=settings,
    )
    return PushUploadsResponse(
        sha256=result.content_hash, size_bytes=result.size_bytes, last_uploads=provenance
    )


@router.get("/pull_uploads")
async def pull_uploads(
    store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
) -> Response:
    """Download the newest uploads archive."""
    return await _pull(BlobKind.UPLOADS, store)

"""Snapshot sync request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel


class Provenance(BaseModel):
    """Who pushed and when, as echoed back by a push."""

    by: str
    at: str


class PushRecordResponse(BaseModel):
    """Last push of one blob kind; every field is null before the first push."""

    by: str | None = None
    at: str | None = None
    sha256: str | None = None
    size_bytes: int | None = None


class LastSyncResponse(BaseModel):
    last_db: PushRecordResponse
    last_uploads: PushRecordResponse
    updated_at: str | None = None


class PushDbResponse(BaseModel):
    status: str = "ok"
    sha256: str
    size_bytes: int
    last_db: Provenance


class PushUploadsResponse(BaseModel):
    status: str = "ok"
    sha256: str
    size_bytes: int
    last_uploads: Provenance

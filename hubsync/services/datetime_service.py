"""Timestamp helpers for provenance and API output."""

from __future__ import annotations

from datetime import UTC, datetime


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization.

    Naive values come from database server defaults and are taken to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()


def default_pushed_at() -> str:
    """Server-side push timestamp, second precision: 2026-02-02T22:21:29+00:00."""
    return format_iso(now_utc().replace(microsecond=0))

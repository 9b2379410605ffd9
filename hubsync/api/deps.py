"""Shared API dependencies: settings, stores, bearer-token auth."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hubsync.config import Settings
from hubsync.exceptions import AuthenticationError, ConfigurationError
from hubsync.services.metadata_service import MetadataTracker
from hubsync.services.snapshot_service import SnapshotStore

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_snapshot_store(request: Request) -> SnapshotStore:
    """Get the snapshot store, or fail if the database was never configured."""
    store: SnapshotStore | None = getattr(request.app.state, "snapshot_store", None)
    if store is None:
        raise ConfigurationError("Database is not configured")
    return store


def get_metadata_tracker(request: Request) -> MetadataTracker:
    """Get the metadata tracker, or fail if the database was never configured."""
    tracker: MetadataTracker | None = getattr(request.app.state, "metadata_tracker", None)
    if tracker is None:
        raise ConfigurationError("Database is not configured")
    return tracker


async def require_sync_token(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> None:
    """Require the shared bearer token.

    An unset secret is a server misconfiguration and is reported before the
    client's credentials are looked at.
    """
    expected = settings.sync_api_key
    if not expected:
        raise ConfigurationError("SYNC_API_KEY not configured")

    token = credentials.credentials.strip() if credentials is not None else ""
    if not token or not secrets.compare_digest(token.encode(), expected.encode()):
        logger.warning("Rejected request with %s bearer token", "invalid" if token else "missing")
        raise AuthenticationError("Unauthorized")

"""Application-level exception types.

Convention:
- Every error that reaches a client derives from ``SyncAPIError`` and carries the
  HTTP status it maps to. The global handler in ``hubsync/main.py`` renders it as
  ``{"error": <message>}``.
- ``StorageError`` messages are written for clients; the database exception is
  chained as ``__cause__`` and only ever logged server-side.
"""

from __future__ import annotations


class SyncAPIError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def headers(self) -> dict[str, str] | None:
        return None


class ConfigurationError(SyncAPIError):
    """Server is missing required configuration (shared secret, DB credentials)."""

    status_code = 500


class AuthenticationError(SyncAPIError):
    """Bearer token is missing or does not match the shared secret."""

    status_code = 401

    @property
    def headers(self) -> dict[str, str] | None:
        return {"WWW-Authenticate": "Bearer"}


class ValidationError(SyncAPIError):
    """Client sent an incomplete or malformed request."""

    status_code = 400


class PayloadTooLargeError(ValidationError):
    status_code = 413


class NotFoundError(SyncAPIError):
    """Requested snapshot or route does not exist."""

    status_code = 404


class StorageError(SyncAPIError):
    """The durable store was unreachable or rejected a query."""

    status_code = 500

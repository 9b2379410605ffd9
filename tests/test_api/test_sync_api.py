"""Integration tests for the snapshot push/pull API."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from hubsync.config import Settings
from hubsync.exceptions import StorageError
from hubsync.models.snapshot import BlobKind
from tests.conftest import TEST_SYNC_API_KEY, auth_headers, create_test_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from httpx import AsyncClient, Response

SMALL_UPLOAD_LIMIT = 4

HELLO_SHA256 = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


async def push_db(client: AsyncClient, payload: bytes, **form: str) -> Response:
    return await client.post(
        "/push",
        files={"db": ("learninghub.sqlite", payload, "application/octet-stream")},
        data=form,
        headers=auth_headers(),
    )


async def push_uploads(client: AsyncClient, payload: bytes, **form: str) -> Response:
    return await client.post(
        "/push_uploads",
        files={"zip": ("uploads.zip", payload, "application/zip")},
        data=form,
        headers=auth_headers(),
    )


class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, client: AsyncClient) -> None:
        resp = await client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["service"] == "learning-hub-sync-api"
        assert body["time"]

    @pytest.mark.asyncio
    async def test_health_needs_no_auth(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert set(resp.json()) == {"status", "service", "time"}

    @pytest.mark.asyncio
    async def test_security_headers(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestNotFound:
    @pytest.mark.asyncio
    async def test_unknown_path_echoes_path_and_method(self, client: AsyncClient) -> None:
        resp = await client.delete("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found", "path": "/nope", "method": "DELETE"}

    @pytest.mark.asyncio
    async def test_wrong_method_on_known_path_is_not_found(self, client: AsyncClient) -> None:
        resp = await client.get("/push")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found", "path": "/push", "method": "GET"}


class TestAuth:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path"),
        [("GET", "/last_sync"), ("GET", "/pull"), ("GET", "/pull_uploads"), ("POST", "/push")],
    )
    async def test_missing_token_is_401(self, client: AsyncClient, method: str, path: str) -> None:
        resp = await client.request(method, path)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_wrong_token_is_401(self, client: AsyncClient) -> None:
        resp = await client.get("/last_sync", headers=auth_headers("not-the-key"))
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_is_401(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/last_sync", headers={"Authorization": f"Basic {TEST_SYNC_API_KEY}"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_scheme_is_case_insensitive(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/last_sync", headers={"Authorization": f"bearer {TEST_SYNC_API_KEY}"}
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_unauthenticated_push_stores_nothing(self, client: AsyncClient) -> None:
        resp = await client.post("/push", files={"db": ("a", b"secret", "application/x-sqlite3")})
        assert resp.status_code == 401
        assert (await client.get("/pull", headers=auth_headers())).status_code == 404


class TestLastSync:
    @pytest.mark.asyncio
    async def test_never_pushed_is_all_null(self, client: AsyncClient) -> None:
        resp = await client.get("/last_sync", headers=auth_headers())
        assert resp.status_code == 200
        empty = {"by": None, "at": None, "sha256": None, "size_bytes": None}
        assert resp.json() == {"last_db": empty, "last_uploads": empty, "updated_at": None}

    @pytest.mark.asyncio
    async def test_db_push_populates_only_last_db(self, client: AsyncClient) -> None:
        await push_db(client, b"hello", device_name="laptop", pushed_at="2026-02-02T10:00:00Z")
        body = (await client.get("/last_sync", headers=auth_headers())).json()
        assert body["last_db"] == {
            "by": "laptop",
            "at": "2026-02-02T10:00:00Z",
            "sha256": HELLO_SHA256,
            "size_bytes": 5,
        }
        assert body["last_uploads"] == {
            "by": None,
            "at": None,
            "sha256": None,
            "size_bytes": None,
        }
        assert body["updated_at"] is not None

    @pytest.mark.asyncio
    async def test_uploads_push_keeps_db_fields(self, client: AsyncClient) -> None:
        await push_db(client, b"db-bytes", device_name="laptop")
        await push_uploads(client, b"zip-bytes", device_name="tablet")
        body = (await client.get("/last_sync", headers=auth_headers())).json()
        assert body["last_db"]["by"] == "laptop"
        assert body["last_uploads"]["by"] == "tablet"
        assert body["last_uploads"]["sha256"] == hashlib.sha256(b"zip-bytes").hexdigest()


class TestPushPullDb:
    @pytest.mark.asyncio
    async def test_hello_round_trip(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"hello", device_name="laptop", pushed_at="now")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "sha256": HELLO_SHA256,
            "size_bytes": 5,
            "last_db": {"by": "laptop", "at": "now"},
        }

        pulled = await client.get("/pull", headers=auth_headers())
        assert pulled.status_code == 200
        assert pulled.content == b"hello"
        assert pulled.headers["X-SHA256"] == HELLO_SHA256
        assert pulled.headers["X-Size-Bytes"] == "5"
        assert pulled.headers["Content-Type"] == "application/x-sqlite3"
        assert pulled.headers["Content-Disposition"] == (
            'attachment; filename="learninghub.sqlite"'
        )

    @pytest.mark.asyncio
    async def test_second_push_wins(self, client: AsyncClient) -> None:
        await push_db(client, b"first version")
        await push_db(client, b"second version")
        pulled = await client.get("/pull", headers=auth_headers())
        assert pulled.content == b"second version"
        assert pulled.headers["X-SHA256"] == hashlib.sha256(b"second version").hexdigest()

    @pytest.mark.asyncio
    async def test_provenance_defaults(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"x")
        last_db = resp.json()["last_db"]
        assert last_db["by"] == "Unknown"
        assert last_db["at"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_provenance_is_trimmed(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"x", device_name="  laptop \n", pushed_at=" 2026-01-01 ")
        assert resp.json()["last_db"] == {"by": "laptop", "at": "2026-01-01"}

    @pytest.mark.asyncio
    async def test_blank_provenance_falls_back_to_defaults(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"x", device_name="   ", pushed_at=" \t ")
        assert resp.status_code == 200
        last_db = resp.json()["last_db"]
        assert last_db["by"] == "Unknown"
        assert last_db["at"].endswith("+00:00")

        stored = (await client.get("/last_sync", headers=auth_headers())).json()["last_db"]
        assert stored["by"] == "Unknown"
        assert stored["at"] == last_db["at"]

    @pytest.mark.asyncio
    async def test_empty_payload_is_accepted(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"")
        assert resp.status_code == 200
        assert resp.json()["size_bytes"] == 0
        pulled = await client.get("/pull", headers=auth_headers())
        assert pulled.status_code == 200
        assert pulled.content == b""

    @pytest.mark.asyncio
    async def test_pull_before_any_push_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/pull", headers=auth_headers())
        assert resp.status_code == 404
        assert resp.json() == {"error": "No snapshot available"}
        assert "X-SHA256" not in resp.headers

    @pytest.mark.asyncio
    async def test_missing_file_field_is_400(self, client: AsyncClient) -> None:
        resp = await client.post("/push", data={"device_name": "laptop"}, headers=auth_headers())
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Missing file field "db"'}

    @pytest.mark.asyncio
    async def test_wrong_field_name_is_400(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/push",
            files={"zip": ("uploads.zip", b"data", "application/zip")},
            headers=auth_headers(),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_plain_string_instead_of_file_is_400(self, client: AsyncClient) -> None:
        resp = await client.post("/push", data={"db": "not a file"}, headers=auth_headers())
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_overlong_device_name_is_400(self, client: AsyncClient) -> None:
        resp = await push_db(client, b"x", device_name="d" * 256)
        assert resp.status_code == 400
        assert "device_name" in resp.json()["error"]
        assert (await client.get("/pull", headers=auth_headers())).status_code == 404


class TestPushPullUploads:
    @pytest.mark.asyncio
    async def test_round_trip(self, client: AsyncClient) -> None:
        archive = b"PK\x03\x04" + bytes(range(256))
        resp = await push_uploads(client, archive, device_name="tablet")
        assert resp.status_code == 200
        body = resp.json()
        assert body["sha256"] == hashlib.sha256(archive).hexdigest()
        assert body["last_uploads"]["by"] == "tablet"
        assert "last_db" not in body

        pulled = await client.get("/pull_uploads", headers=auth_headers())
        assert pulled.content == archive
        assert pulled.headers["Content-Type"] == "application/zip"
        assert pulled.headers["Content-Disposition"] == 'attachment; filename="uploads.zip"'

    @pytest.mark.asyncio
    async def test_pull_before_any_push_is_404(self, client: AsyncClient) -> None:
        await push_db(client, b"only the database")
        resp = await client.get("/pull_uploads", headers=auth_headers())
        assert resp.status_code == 404
        assert resp.json() == {"error": "No uploads snapshot available"}

    @pytest.mark.asyncio
    async def test_missing_zip_field_is_400(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/push_uploads",
            files={"db": ("x.sqlite", b"data", "application/octet-stream")},
            headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Missing file field "zip"'}

    @pytest.mark.asyncio
    async def test_kinds_do_not_leak(self, client: AsyncClient) -> None:
        await push_db(client, b"database")
        await push_uploads(client, b"archive")
        assert (await client.get("/pull", headers=auth_headers())).content == b"database"
        assert (await client.get("/pull_uploads", headers=auth_headers())).content == b"archive"


@pytest.fixture
async def small_limit_client(tmp_path: Path) -> AsyncGenerator[AsyncClient]:
    settings = Settings(
        _env_file=None,
        sync_api_key=TEST_SYNC_API_KEY,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        max_upload_bytes=SMALL_UPLOAD_LIMIT,
    )
    async with create_test_client(settings) as ac:
        yield ac


class TestUploadLimit:
    @pytest.mark.asyncio
    async def test_one_byte_over_limit_is_413(self, small_limit_client: AsyncClient) -> None:
        resp = await push_db(small_limit_client, b"x" * (SMALL_UPLOAD_LIMIT + 1))
        assert resp.status_code == 413
        assert resp.json() == {"error": f'File field "db" exceeds {SMALL_UPLOAD_LIMIT} bytes'}

    @pytest.mark.asyncio
    async def test_rejected_upload_stores_nothing(self, small_limit_client: AsyncClient) -> None:
        await push_db(small_limit_client, b"x" * (SMALL_UPLOAD_LIMIT + 1))
        assert (await small_limit_client.get("/pull", headers=auth_headers())).status_code == 404
        last = (await small_limit_client.get("/last_sync", headers=auth_headers())).json()
        assert last["last_db"]["sha256"] is None

    @pytest.mark.asyncio
    async def test_payload_at_limit_is_accepted(self, small_limit_client: AsyncClient) -> None:
        payload = b"x" * SMALL_UPLOAD_LIMIT
        resp = await push_db(small_limit_client, payload)
        assert resp.status_code == 200
        assert resp.json()["size_bytes"] == SMALL_UPLOAD_LIMIT
        pulled = await small_limit_client.get("/pull", headers=auth_headers())
        assert pulled.content == payload

    @pytest.mark.asyncio
    async def test_uploads_limit_names_zip_field(self, small_limit_client: AsyncClient) -> None:
        resp = await push_uploads(small_limit_client, b"PK\x03\x04\x00")
        assert resp.status_code == 413
        assert resp.json() == {"error": f'File field "zip" exceeds {SMALL_UPLOAD_LIMIT} bytes'}


class TestStorageFailures:
    @pytest.mark.asyncio
    async def test_store_failure_is_500_with_safe_message(self, client: AsyncClient) -> None:
        with patch(
            "hubsync.services.snapshot_service.SnapshotStore.append",
            new_callable=AsyncMock,
            side_effect=StorageError("Failed to store db snapshot"),
        ):
            resp = await push_db(client, b"hello")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to store db snapshot"}

    @pytest.mark.asyncio
    async def test_metadata_failure_keeps_stored_snapshot(self, client: AsyncClient) -> None:
        with patch(
            "hubsync.services.metadata_service.MetadataTracker.record_push",
            new_callable=AsyncMock,
            side_effect=StorageError("Failed to update sync metadata"),
        ) as record_push:
            resp = await push_db(client, b"orphan")
        assert resp.status_code == 500
        record_push.assert_awaited_once()
        assert record_push.await_args.args[0] == BlobKind.DB

        # The blob insert already committed; metadata stays advisory.
        pulled = await client.get("/pull", headers=auth_headers())
        assert pulled.content == b"orphan"
        last = (await client.get("/last_sync", headers=auth_headers())).json()
        assert last["last_db"]["sha256"] is None

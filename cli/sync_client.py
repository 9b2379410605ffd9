"""CLI sync client for pushing and pulling HubSync snapshots."""

from __future__ import annotations

import argparse
import hashlib
import json
import socket
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

CONFIG_FILE = ".hubsync.json"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


@dataclass(frozen=True)
class KindEndpoints:
    push_path: str
    pull_path: str
    form_field: str
    default_filename: str


KINDS: dict[str, KindEndpoints] = {
    "db": KindEndpoints("/push", "/pull", "db", "learninghub.sqlite"),
    "uploads": KindEndpoints("/push_uploads", "/pull_uploads", "zip", "uploads.zip"),
}


class ChecksumMismatchError(Exception):
    """Downloaded bytes do not match the hash announced by the server."""


def hash_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of a byte string."""
    return hashlib.sha256(data).hexdigest()


class SnapshotClient:
    """Client for pushing and pulling snapshots to a HubSync server."""

    def __init__(
        self,
        server_url: str,
        token: str,
        device_name: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.device_name = device_name
        self.client = httpx.Client(
            base_url=self.server_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=300.0,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> SnapshotClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def push(self, kind: str, path: Path, pushed_at: str | None = None) -> dict[str, Any]:
        """Upload ``path`` as the new snapshot of ``kind``."""
        endpoints = KINDS[kind]
        data: dict[str, str] = {}
        if self.device_name:
            data["device_name"] = self.device_name
        if pushed_at:
            data["pushed_at"] = pushed_at

        payload = path.read_bytes()
        resp = self.client.post(
            endpoints.push_path,
            data=data,
            files={endpoints.form_field: (path.name, payload, "application/octet-stream")},
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        if result.get("sha256") != hash_bytes(payload):
            raise ChecksumMismatchError(
                f"Server stored {result.get('sha256')} for {path}, expected {hash_bytes(payload)}"
            )
        return result

    def pull(self, kind: str, dest: Path) -> str:
        """Download the latest snapshot of ``kind`` into ``dest``.

        Returns the verified SHA-256. Nothing is written when the checksum does not match.
        """
        endpoints = KINDS[kind]
        resp = self.client.get(endpoints.pull_path)
        resp.raise_for_status()
        expected = resp.headers.get("X-SHA256", "")
        actual = hash_bytes(resp.content)
        if expected != actual:
            raise ChecksumMismatchError(
                f"Downloaded {kind} snapshot hashes to {actual}, server announced {expected}"
            )
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(dest.name + ".part")
        tmp.write_bytes(resp.content)
        tmp.replace(dest)
        return actual

    def last_sync(self) -> dict[str, Any]:
        """Fetch last-push metadata for both kinds."""
        resp = self.client.get("/last_sync")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def load_config(dir_path: Path) -> dict[str, str]:
    """Load sync config from file."""
    config_path = dir_path / CONFIG_FILE
    if not config_path.exists():
        return {}
    config: dict[str, str] = json.loads(config_path.read_text())
    return config


def save_config(dir_path: Path, config: dict[str, str]) -> None:
    """Save sync config to file."""
    config_path = dir_path / CONFIG_FILE
    config_path.write_text(json.dumps(config, indent=2))


def _print_record(label: str, record: dict[str, Any]) -> None:
    if record.get("sha256") is None:
        print(f"  {label}: never pushed")
        return
    print(f"  {label}: {record.get('size_bytes')} bytes, sha256 {record['sha256'][:12]}")
    print(f"    by {record.get('by')} at {record.get('at')}")


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="hubsync",
        description="Push and pull snapshots to and from a HubSync server",
    )
    parser.add_argument("--dir", "-d", default=".", help="Config directory (default: current)")
    parser.add_argument("--server", "-s", help="Server URL")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--token", help="Shared sync API key")
    parser.add_argument("--device", help="Device name recorded with pushes")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("init", help="Initialize sync configuration")
    subparsers.add_parser("status", help="Show the last push of each kind")
    for kind, verb in (("db", "push"), ("uploads", "push-uploads")):
        push_parser = subparsers.add_parser(verb, help=f"Push a {kind} snapshot")
        push_parser.add_argument("path", help="File to upload")
        push_parser.add_argument("--pushed-at", help="Timestamp to record with the push")
    for kind, verb in (("db", "pull"), ("uploads", "pull-uploads")):
        pull_parser = subparsers.add_parser(verb, help=f"Pull the latest {kind} snapshot")
        pull_parser.add_argument(
            "dest", nargs="?", default=KINDS[kind].default_filename, help="Destination file"
        )

    args = parser.parse_args()
    config_dir = Path(args.dir).resolve()

    if args.command == "init":
        if not args.server:
            print("Error: --server required for init")
            sys.exit(1)
        try:
            server_url = validate_server_url(args.server, args.allow_insecure_http)
        except ValueError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
        config = {
            "server": server_url,
            "device_name": args.device or socket.gethostname(),
        }
        if args.token:
            config["token"] = args.token
        save_config(config_dir, config)
        print(f"Initialized sync config in {config_dir / CONFIG_FILE}")
        return

    config = load_config(config_dir)
    configured_server_url = args.server or config.get("server")
    if not configured_server_url:
        print("Error: No server configured. Run 'hubsync init --server <url>' first.")
        sys.exit(1)
    try:
        server_url = validate_server_url(configured_server_url, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    token = args.token or config.get("token")
    if not token:
        print("Error: No token configured. Pass --token or run 'hubsync init --token <key>'.")
        sys.exit(1)
    device_name = args.device or config.get("device_name")

    with SnapshotClient(server_url, token, device_name) as client:
        try:
            if args.command == "status":
                meta = client.last_sync()
                print("Last sync:")
                _print_record("db", meta.get("last_db", {}))
                _print_record("uploads", meta.get("last_uploads", {}))
            elif args.command in ("push", "push-uploads"):
                kind = "db" if args.command == "push" else "uploads"
                result = client.push(kind, Path(args.path), args.pushed_at)
                print(f"Pushed {kind}: {result['size_bytes']} bytes, sha256 {result['sha256']}")
            elif args.command in ("pull", "pull-uploads"):
                kind = "db" if args.command == "pull" else "uploads"
                sha = client.pull(kind, Path(args.dest))
                print(f"Pulled {kind} into {args.dest} (sha256 {sha})")
            else:
                parser.print_help()
        except httpx.HTTPStatusError as exc:
            try:
                message = exc.response.json().get("error", exc.response.text)
            except ValueError:
                message = exc.response.text
            print(f"Error: server returned {exc.response.status_code}: {message}")
            sys.exit(1)
        except ChecksumMismatchError as exc:
            print(f"Error: {exc}")
            sys.exit(1)


if __name__ == "__main__":
    main()

"""CLI sync client: pull a FileSync server directory into a local directory."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn
from urllib.parse import quote, urlparse

import httpx
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from filesync.exceptions import (
    AuthenticationFailure,
    FileSyncError,
    InvalidConfiguration,
    InvalidPrincipal,
    LocalFileFailure,
    ProtocolFailure,
)
from filesync.filesystem.manifest import build_manifest
from filesync.schemas.sync import DifferenceData
from filesync.services.crypto_service import RsaChallengeCipher, generate_keypair
from filesync.services.diff_service import DiffResult
from filesync.services.keychain import Keychain, is_valid_principal

if TYPE_CHECKING:
    from filesync.filesystem.manifest import FileEntry
    from filesync.services.crypto_service import ChallengeCipher

logger = logging.getLogger(__name__)

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class ClientSettings(BaseSettings):
    """Defaults for CLI options, read from ``FILESYNC_*`` variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="FILESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: str | None = None
    user: str | None = None
    keychain: Path | None = None


@dataclass
class SyncResult:
    """Paths changed by one sync run."""

    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def _is_safe_local_path(content_dir: Path, file_path: str) -> Path | None:
    """Resolve a server-provided path within content_dir, returning None on traversal."""
    local_path = (content_dir / file_path).resolve()
    root = content_dir.resolve()
    if not local_path.is_relative_to(root) or local_path == root:
        return None
    return local_path


def write_file_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file in the same directory and a rename.

    Readers see either the old file or the complete new one, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class SyncClient:
    """Client side of the sync protocol.

    A sync is: authorize, send the local manifest, download everything in the
    server's ``update`` set, optionally delete the ``delete`` set, unauthorize.
    The first failure aborts the run; files already written stay written.
    """

    def __init__(
        self,
        keychain: Keychain,
        *,
        cipher: ChallengeCipher | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.keychain = keychain
        self.cipher: ChallengeCipher = cipher or RsaChallengeCipher()
        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(timeout=timeout)
        self.server_url: str | None = None
        self.token: str | None = None

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> SyncClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ── Orchestration ────────────────────────────────

    def dispatch(
        self,
        server_url: str,
        principal: str,
        directory: Path | str,
        *,
        delete: bool = False,
        checksum: bool = False,
    ) -> SyncResult:
        """Sync ``directory`` from the server at ``server_url``."""
        content_dir = self._prepare(server_url, principal, directory)
        self.token = self.authorize(principal)
        try:
            diff = self.difference(content_dir, checksum)
            return self.apply(content_dir, diff, delete=delete)
        finally:
            self.unauthorize()

    def status(
        self,
        server_url: str,
        principal: str,
        directory: Path | str,
        *,
        checksum: bool = False,
    ) -> DiffResult:
        """Show what a sync would change without downloading or deleting anything."""
        content_dir = self._prepare(server_url, principal, directory)
        self.token = self.authorize(principal)
        try:
            return self.difference(content_dir, checksum)
        finally:
            self.unauthorize()

    def _prepare(self, server_url: str, principal: str, directory: Path | str) -> Path:
        """Check everything that can fail before any network call."""
        if not isinstance(principal, str) or not is_valid_principal(principal):
            raise InvalidPrincipal(f"Invalid user id {principal!r}")
        if not self.keychain.has_private_key(principal):
            raise InvalidPrincipal(f"No private key for {principal} in {self.keychain.path}")
        content_dir = Path(directory)
        if not content_dir.is_dir():
            raise InvalidConfiguration(f"Local directory does not exist: {content_dir}")
        self.server_url = server_url
        return content_dir.resolve()

    def apply(self, content_dir: Path, diff: DiffResult, *, delete: bool = False) -> SyncResult:
        """Download the update set, then delete the delete set if requested."""
        result = SyncResult()

        for entry in diff.update:
            self._update_file(content_dir, entry)
            print(f"  Download: {entry.path}")
            result.updated.append(entry.path)

        if delete:
            for file_path in diff.delete:
                if self._delete_file(content_dir, file_path):
                    print(f"  Delete local: {file_path}")
                    result.deleted.append(file_path)

        logger.info(
            "Sync complete: %d updated, %d deleted", len(result.updated), len(result.deleted)
        )
        return result

    # ── Protocol actions ─────────────────────────────

    def _post(self, data: dict[str, Any]) -> httpx.Response:
        if self.server_url is None:
            raise InvalidConfiguration("No server URL set")
        try:
            return self.client.post(self.server_url, json=data)
        except httpx.HTTPError as exc:
            raise ProtocolFailure(f"Request to {self.server_url} failed: {exc}") from exc

    def authorize(self, principal: str) -> str:
        """Obtain a session token by decrypting the server's challenge."""
        try:
            resp = self._post({"action": "authorize", "username": principal})
        except ProtocolFailure as exc:
            raise AuthenticationFailure("Authentication process failure") from exc
        if resp.status_code != 200:
            raise AuthenticationFailure(
                f"Authentication process failure (HTTP {resp.status_code})"
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise AuthenticationFailure("Authentication process failure") from exc
        data = body.get("data") if isinstance(body, dict) else None
        challenge = data.get("challenge") if isinstance(data, dict) else None
        if not isinstance(challenge, str):
            raise AuthenticationFailure("Authentication process failure")

        try:
            return self.cipher.decrypt(challenge, self.keychain.load_private_key(principal))
        except ValueError as exc:
            raise AuthenticationFailure("Decryption error") from exc

    def unauthorize(self) -> None:
        """Revoke the current token. Best effort: failures are only logged."""
        if self.token is None:
            return
        try:
            resp = self._post({"action": "unauthorize", "token": self.token})
            if resp.status_code != 200:
                logger.warning("Unauthorize failed (HTTP %d)", resp.status_code)
        except FileSyncError as exc:
            logger.warning("Unauthorize failed: %s", exc)
        finally:
            self.token = None

    def difference(self, content_dir: Path, checksum: bool = False) -> DiffResult:
        """Send the local manifest and return the server's update/delete sets."""
        manifest = build_manifest(content_dir)
        resp = self._post(
            {
                "action": "difference",
                "token": self.token,
                "files": [entry.to_dict() for entry in manifest.values()],
                "checksum": checksum,
            }
        )
        if resp.status_code != 200:
            raise ProtocolFailure(f"difference failed (HTTP {resp.status_code})")
        try:
            data = DifferenceData.model_validate(resp.json()["data"])
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise ProtocolFailure("Malformed difference response") from exc
        return DiffResult(
            update=[entry.to_entry() for entry in data.update],
            delete=list(data.delete),
        )

    def download(self, file_path: str) -> bytes:
        """Fetch the raw bytes of one file."""
        resp = self._post(
            {"action": "download", "token": self.token, "file": quote(file_path, safe="/")}
        )
        if resp.status_code != 200:
            raise ProtocolFailure(f"download of {file_path} failed (HTTP {resp.status_code})")
        return resp.content

    # ── Local filesystem ─────────────────────────────

    def _update_file(self, content_dir: Path, entry: FileEntry) -> None:
        """Download one file, then apply its permissions, then its mtime.

        The mtime must be set last: changing the mode can bump it on some
        filesystems.
        """
        local_path = _is_safe_local_path(content_dir, entry.path)
        if local_path is None:
            raise ProtocolFailure(f"Server sent a path outside the local directory: {entry.path}")
        data = self.download(entry.path)
        try:
            write_file_atomic(local_path, data)
            os.chmod(local_path, int(entry.permissions, 8))
            os.utime(local_path, (entry.modified, entry.modified))
        except OSError as exc:
            raise LocalFileFailure(f"Cannot write {entry.path}: {exc.strerror or exc}") from exc

    def _delete_file(self, content_dir: Path, file_path: str) -> bool:
        """Remove one local file. Returns True if a file was removed."""
        local_path = _is_safe_local_path(content_dir, file_path)
        if local_path is None:
            raise ProtocolFailure(f"Server sent a path outside the local directory: {file_path}")
        if not local_path.is_file():
            return False
        try:
            local_path.unlink()
        except OSError as exc:
            raise LocalFileFailure(f"Cannot delete {file_path}: {exc.strerror or exc}") from exc
        return True


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip()
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


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filesync",
        description="Pull a directory from a FileSync server",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress details")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--user", "-u", help="Principal id (default: $FILESYNC_USER)")
    common.add_argument("--keychain", "-k", help="Key directory (default: $FILESYNC_KEYCHAIN)")

    remote = argparse.ArgumentParser(add_help=False, parents=[common])
    remote.add_argument("--dir", "-d", default=".", help="Local directory (default: current)")
    remote.add_argument("--server", "-s", help="Server endpoint URL (default: $FILESYNC_SERVER)")
    remote.add_argument(
        "--checksum",
        action="store_true",
        help="Compare file contents instead of size, time and permissions",
    )
    remote.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )

    subparsers = parser.add_subparsers(dest="command")
    sync_parser = subparsers.add_parser("sync", parents=[remote], help="Pull changes")
    sync_parser.add_argument(
        "--delete", action="store_true", help="Delete local files missing on the server"
    )
    subparsers.add_parser("status", parents=[remote], help="Show what would change")
    keygen_parser = subparsers.add_parser("keygen", parents=[common], help="Create a key pair")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite existing keys")
    return parser


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}")
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.command is None:
        parser.print_help()
        return

    settings = ClientSettings()
    user = args.user or settings.user
    keychain_dir = args.keychain or settings.keychain
    if not user:
        _fail("No user configured. Pass --user or set FILESYNC_USER.")
    if not keychain_dir:
        _fail("No keychain configured. Pass --keychain or set FILESYNC_KEYCHAIN.")

    try:
        keychain = Keychain(keychain_dir)
        if args.command == "keygen":
            public_pem, private_pem = generate_keypair()
            public_path, private_path = keychain.store_keypair(
                user, public_pem, private_pem, overwrite=args.force
            )
            print(f"Wrote {public_path}")
            print(f"Wrote {private_path}")
            print(f"Install {public_path.name} in the server's keychain to grant access.")
            return

        configured_server_url = args.server or settings.server
        if not configured_server_url:
            _fail("No server configured. Pass --server or set FILESYNC_SERVER.")
        try:
            server_url = validate_server_url(configured_server_url, args.allow_insecure_http)
        except ValueError as exc:
            _fail(str(exc))

        with SyncClient(keychain) as client:
            if args.command == "status":
                diff = client.status(server_url, user, args.dir, checksum=args.checksum)
                print("Sync Status:")
                print(f"  To download:     {len(diff.update)}")
                print(f"  Not on server:   {len(diff.delete)}")
                for entry in diff.update:
                    print(f"    < {entry.path} (download)")
                for path in diff.delete:
                    print(f"    - {path} (not on server)")
            else:
                result = client.dispatch(
                    server_url, user, args.dir, delete=args.delete, checksum=args.checksum
                )
                total = len(result.updated) + len(result.deleted)
                print(f"Sync complete. {total} file(s) synced.")
    except FileSyncError as exc:
        _fail(str(exc))


if __name__ == "__main__":
    main()

"""Directory manifests: one FileEntry per synchronizable file."""

from __future__ import annotations

import logging
import os
import stat
import zlib
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from filesync.exceptions import NotFound
from filesync.filesystem.ignore import load_ignore_rules

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class FileEntry:
    """State of a single file, relative to the manifest root."""

    path: str
    size: int
    modified: int
    permissions: str
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileEntry:
        return cls(
            path=data["path"],
            size=data["size"],
            modified=data["modified"],
            permissions=data["permissions"],
            checksum=data["checksum"],
        )


def checksum_file(file_path: Path) -> str:
    """Compute the CRC-32 of a file as 8 lowercase hex digits."""
    crc = 0
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            crc = zlib.crc32(chunk, crc)
    return f"{crc & 0xFFFFFFFF:08x}"


def format_permissions(mode: int) -> str:
    """Render the permission bits of ``st_mode`` as a 4-digit octal string."""
    return f"{stat.S_IMODE(mode):04o}"


def describe_file(root: Path, full_path: Path) -> FileEntry:
    """Build the FileEntry for ``full_path`` relative to ``root``."""
    st = full_path.stat()
    return FileEntry(
        path=full_path.relative_to(root).as_posix(),
        size=st.st_size,
        modified=int(st.st_mtime),
        permissions=format_permissions(st.st_mode),
        checksum=checksum_file(full_path),
    )


def build_manifest(directory: Path | str) -> dict[str, FileEntry]:
    """Scan ``directory`` and return its manifest keyed by relative path.

    Only regular files are listed; symlinks are neither followed nor listed.
    Paths matching the directory's ``.syncignore`` (and the ignore file
    itself) are skipped, and ignored directories are not descended into.
    Files whose names are not valid UTF-8, or that vanish or become
    unreadable mid-scan, are logged and left out.

    Raises NotFound if the directory does not exist.
    """
    try:
        root = Path(directory).resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise NotFound(f"Manifest root does not exist: {directory}") from exc
    if not root.is_dir():
        raise NotFound(f"Manifest root is not a directory: {directory}")

    # Rules must be loaded before the walk: the ignore file excludes itself.
    rules = load_ignore_rules(root)

    entries: dict[str, FileEntry] = {}
    for current, dirs, files in os.walk(root):
        current_path = Path(current)
        dirs[:] = sorted(
            d
            for d in dirs
            if not rules.matches((current_path / d).relative_to(root).as_posix() + "/")
        )
        for filename in sorted(files):
            full = current_path / filename
            rel = full.relative_to(root).as_posix()
            if rules.matches(rel):
                continue
            if full.is_symlink() or not full.is_file():
                continue
            try:
                rel.encode("utf-8")
            except UnicodeEncodeError:
                logger.warning("Skipping file with non-UTF-8 name: %r", rel)
                continue
            try:
                entries[rel] = describe_file(root, full)
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", rel, exc)

    logger.debug("Scanned %s: %d file(s)", root, len(entries))
    return entries

"""Diff service: compare a source manifest with a destination manifest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from filesync.filesystem.manifest import FileEntry


@dataclass
class DiffResult:
    """Files the destination must fetch and paths it holds that the source lacks."""

    update: list[FileEntry] = field(default_factory=list)
    delete: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "update": [entry.to_dict() for entry in self.update],
            "delete": list(self.delete),
        }

    @property
    def is_empty(self) -> bool:
        return not self.update and not self.delete


def entries_match(source: FileEntry, destination: FileEntry, checksum: bool = False) -> bool:
    """Compare two entries for the same path under the active mode.

    Checksum mode looks at content only, since timestamps on a freshly
    downloaded destination cannot be trusted.  The default mode compares
    size, modification time and permissions.
    """
    if checksum:
        return source.checksum == destination.checksum
    return (
        source.size == destination.size
        and source.modified == destination.modified
        and source.permissions == destination.permissions
    )


def compute_difference(
    source: dict[str, FileEntry],
    destination: dict[str, FileEntry],
    checksum: bool = False,
) -> DiffResult:
    """Compute what the destination needs to mirror the source."""
    result = DiffResult()
    for path, entry in source.items():
        existing = destination.get(path)
        if existing is None or not entries_match(entry, existing, checksum):
            result.update.append(entry)
    for path in destination:
        if path not in source:
            result.delete.append(path)
    return result

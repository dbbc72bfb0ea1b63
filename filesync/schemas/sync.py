"""Wire schemas for the sync protocol."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

from filesync.filesystem.manifest import FileEntry


class ManifestEntry(BaseModel):
    """Single file entry in a manifest sent by a client."""

    model_config = ConfigDict(extra="ignore")

    path: StrictStr = Field(min_length=1)
    size: StrictInt = Field(ge=0)
    modified: StrictInt
    permissions: StrictStr = Field(pattern=r"^[0-7]{4}$")
    checksum: StrictStr

    def to_entry(self) -> FileEntry:
        return FileEntry(
            path=self.path,
            size=self.size,
            modified=self.modified,
            permissions=self.permissions,
            checksum=self.checksum,
        )


class DifferenceRequest(BaseModel):
    """Body of a ``difference`` action."""

    model_config = ConfigDict(extra="ignore")

    files: list[ManifestEntry]
    checksum: StrictBool


class DifferenceData(BaseModel):
    """``data`` member of a ``difference`` response, as read by the client."""

    model_config = ConfigDict(extra="ignore")

    update: list[ManifestEntry]
    delete: list[StrictStr]

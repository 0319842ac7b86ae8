"""
Repository domain models for HubFetch.

This module contains immutable data classes representing repository
identifiers and the entries returned by the remote tree listing API.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..infrastructure.error_handler import path_traversal_error, validation_error


_REPO_PART = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True)
class RepositoryId:
    """Validated ``owner/name`` repository identifier."""

    owner: str
    name: str

    @classmethod
    def parse(cls, raw: Any) -> "RepositoryId":
        """
        Validate caller input once, before any network call.

        Raises:
            RepositoryError: PATH_TRAVERSAL for ``..`` or ``//``,
                INVALID_PARAMS for anything else malformed
        """
        if not isinstance(raw, str) or not raw.strip():
            raise validation_error("repo_id", "repository id must not be empty", raw)

        value = raw.strip()
        if ".." in value or "//" in value:
            raise path_traversal_error("repo_id", value)

        if value.count("/") != 1:
            raise validation_error("repo_id", "repository id must look like owner/name", value)

        owner, name = value.split("/")
        if not _REPO_PART.match(owner) or not _REPO_PART.match(name):
            raise validation_error("repo_id", "repository id must look like owner/name", value)

        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


class EntryType(Enum):
    """Kinds of entries in a remote tree listing."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeEntry:
    """One file or directory record from a listing page."""

    type: EntryType
    path: str
    size: Optional[int] = None
    oid: Optional[str] = None
    lfs: bool = False

    @property
    def is_file(self) -> bool:
        return self.type is EntryType.FILE

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIRECTORY

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def extension(self) -> str:
        """Lower-cased extension with leading dot, or an empty string."""

        return posixpath.splitext(self.name)[1].lower()

    @property
    def depth(self) -> int:
        """Number of directory levels above this entry."""

        return self.path.count("/")

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> Optional["TreeEntry"]:
        """Build an entry from one API record; unknown types are dropped."""

        try:
            entry_type = EntryType(item.get("type"))
        except ValueError:
            return None

        path = str(item.get("path") or "").strip("/")
        if not path:
            return None

        if entry_type is EntryType.DIRECTORY:
            return cls(type=entry_type, path=path)

        size = item.get("size")
        lfs = item.get("lfs")
        if isinstance(lfs, dict) and lfs.get("size") is not None:
            size = lfs["size"]

        return cls(
            type=entry_type,
            path=path,
            size=int(size) if isinstance(size, (int, float)) else None,
            oid=item.get("oid"),
            lfs=bool(lfs)
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "path": self.path}
        if self.is_file:
            data.update({"size": self.size, "oid": self.oid, "lfs": self.lfs})
        return data


def parse_listing(data: Any) -> List[TreeEntry]:
    """Parse a listing response body; anything but a JSON array is empty."""

    if not isinstance(data, list):
        return []

    entries = []
    for item in data:
        if isinstance(item, dict):
            entry = TreeEntry.from_api(item)
            if entry is not None:
                entries.append(entry)
    return entries


__all__ = [
    "RepositoryId",
    "EntryType",
    "TreeEntry",
    "parse_listing",
]

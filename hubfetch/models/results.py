"""
Result models returned by the FetchEngine operations.

Each result either carries a payload or an ``error``; ``to_dict()`` yields
the shape handed to protocol front ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .download import BatchResult, DownloadStatistics
from .repository import EntryType, TreeEntry
from ..infrastructure.error_handler import RepositoryError


TRUNCATION_HINT = (
    "More files exist beyond the returned results; "
    "refine your query with patterns or raise max_files/max_depth"
)


def _error_dict(error: RepositoryError) -> Dict[str, Any]:
    return {"success": False, "error": error.to_dict()}


####
##      LIST RESULT
#####
@dataclass
class ListStats:
    """Aggregates over one listing walk."""

    returned_files: int = 0
    total_files: int = 0         # File entries seen in fetched listings, before filtering
    total_size: int = 0
    directory_count: int = 0     # Listings fetched
    file_types: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "returned_files": self.returned_files,
            "total_files": self.total_files,
            "total_size": self.total_size,
            "directory_count": self.directory_count,
            "file_types": dict(self.file_types),
        }


@dataclass
class ListResult:
    """Outcome of ``FetchEngine.list``."""

    repo_id: str
    revision: str = "main"
    path: str = ""
    files: List[TreeEntry] = field(default_factory=list)
    stats: ListStats = field(default_factory=ListStats)
    truncated_paths: List[str] = field(default_factory=list)
    error: Optional[RepositoryError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def truncated(self) -> bool:
        return bool(self.truncated_paths)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return _error_dict(self.error)

        data: Dict[str, Any] = {
            "success": True,
            "repo_id": self.repo_id,
            "revision": self.revision,
            "path": self.path,
            "files": [entry.to_dict() for entry in self.files],
            "stats": self.stats.to_dict(),
            "truncated": self.truncated,
        }
        if self.truncated:
            data["truncated_paths"] = list(self.truncated_paths)
            data["message"] = TRUNCATION_HINT
        return data


####
##      EXPLORE RESULT
#####
@dataclass
class TreeNode:
    """One node of an explored tree; directories own their children."""

    name: str
    path: str
    type: EntryType
    size: Optional[int] = None
    truncated: bool = False
    children: List["TreeNode"] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIRECTORY

    def sorted_children(self) -> List["TreeNode"]:
        """Directories first, then files, each group by name."""

        return sorted(self.children, key=lambda node: (not node.is_directory, node.name.lower(), node.path))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "path": self.path, "type": self.type.value}
        if self.is_directory:
            data["children"] = [child.to_dict() for child in self.sorted_children()]
            if self.truncated:
                data["truncated"] = True
        else:
            data["size"] = self.size
        return data


@dataclass
class TreeStats:
    total_files: int = 0
    total_directories: int = 0
    total_size: int = 0
    max_depth: int = 0
    file_types: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "total_directories": self.total_directories,
            "total_size": self.total_size,
            "max_depth": self.max_depth,
            "file_types": dict(self.file_types),
        }


@dataclass
class TreeStructure:
    """Outcome of ``FetchEngine.explore``."""

    repo_id: str
    revision: str = "main"
    root: Optional[TreeNode] = None
    stats: TreeStats = field(default_factory=TreeStats)
    truncated_paths: List[str] = field(default_factory=list)
    tree_view: Optional[str] = None
    error: Optional[RepositoryError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def truncated(self) -> bool:
        return bool(self.truncated_paths)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return _error_dict(self.error)

        data: Dict[str, Any] = {
            "success": True,
            "repo_id": self.repo_id,
            "revision": self.revision,
            "structure": self.root.to_dict() if self.root else None,
            "stats": self.stats.to_dict(),
            "truncated": self.truncated,
        }
        if self.truncated:
            data["truncated_paths"] = list(self.truncated_paths)
            data["message"] = TRUNCATION_HINT
        if self.tree_view is not None:
            data["tree_view"] = self.tree_view
        return data


####
##      INFO RESULT
#####
@dataclass
class InfoResult:
    """Outcome of ``FetchEngine.info``: the hub's metadata document as-is."""

    repo_id: str
    revision: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[RepositoryError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return _error_dict(self.error)
        return {"success": True, "repo_id": self.repo_id, "data": dict(self.data)}


####
##      DOWNLOAD RESULT
#####
@dataclass
class DownloadResult:
    """
    Outcome of ``FetchEngine.download``.

    A batch where some files succeeded and others failed is reported as
    ``partial``; a batch where every file failed carries an aggregated error.
    """

    repo_id: str
    revision: str = "main"
    target_dir: str = ""
    downloaded_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    cancelled_files: List[str] = field(default_factory=list)
    failed_files: List[Dict[str, Any]] = field(default_factory=list)
    stats: DownloadStatistics = field(default_factory=DownloadStatistics)
    retry_counts: Dict[str, int] = field(default_factory=dict)
    truncated_paths: List[str] = field(default_factory=list)
    error: Optional[RepositoryError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def partial(self) -> bool:
        return bool(self.failed_files) and bool(self.downloaded_files or self.skipped_files)

    @classmethod
    def from_batch(
        cls,
        repo_id: str,
        revision: str,
        target_dir: str,
        batch: BatchResult,
        truncated_paths: Optional[List[str]] = None
    ) -> "DownloadResult":
        result = cls(
            repo_id=repo_id,
            revision=revision,
            target_dir=target_dir,
            downloaded_files=[task.file.path for task in batch.succeeded],
            skipped_files=[task.file.path for task in batch.skipped],
            cancelled_files=[task.file.path for task in batch.cancelled],
            failed_files=batch.errors(),
            stats=batch.stats,
            retry_counts={
                task.file.path: task.retry_count
                for task in batch.succeeded + batch.failed
            },
            truncated_paths=list(truncated_paths or [])
        )

        first = next((task.error for task in batch.failed if task.error), None)
        if not batch.success and first is not None:
            result.error = RepositoryError(
                first.code,
                f"All {len(batch.failed)} files failed to download",
                details={"errors": result.failed_files},
                suggestions=first.suggestions
            )
        return result

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            data = _error_dict(self.error)
            data["stats"] = self.stats.to_dict()
            return data

        data: Dict[str, Any] = {
            "success": True,
            "partial": self.partial,
            "repo_id": self.repo_id,
            "revision": self.revision,
            "target_dir": self.target_dir,
            "downloaded_files": list(self.downloaded_files),
            "skipped_files": list(self.skipped_files),
            "stats": self.stats.to_dict(),
        }
        if self.failed_files:
            data["errors"] = list(self.failed_files)
        if self.cancelled_files:
            data["cancelled_files"] = list(self.cancelled_files)
        if self.truncated_paths:
            data["truncated_paths"] = list(self.truncated_paths)
            data["message"] = TRUNCATION_HINT
        return data


__all__ = [
    "TRUNCATION_HINT",
    "ListStats",
    "ListResult",
    "TreeNode",
    "TreeStats",
    "TreeStructure",
    "InfoResult",
    "DownloadResult",
]

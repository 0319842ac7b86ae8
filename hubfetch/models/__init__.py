"""
Core data models API surface for HubFetch.

This file re-exports model classes from domain-specific modules so that
imports like `from hubfetch.models import X` keep working.
"""

from .repository import (
    RepositoryId,
    EntryType,
    TreeEntry,
    parse_listing,
)
from .download import (
    PART_SUFFIX,
    DownloadStatus,
    FilterCriteria,
    WalkBudget,
    DownloadTask,
    DownloadStatistics,
    BatchResult,
    DownloadControl,
)
from .config import (
    EngineConfig,
    ListOptions,
    ExploreOptions,
    InfoOptions,
    DownloadOptions,
)
from .results import (
    ListStats,
    ListResult,
    TreeNode,
    TreeStats,
    TreeStructure,
    InfoResult,
    DownloadResult,
)

__all__ = [
    # Repository models
    "RepositoryId",
    "EntryType",
    "TreeEntry",
    "parse_listing",
    # Download models
    "PART_SUFFIX",
    "DownloadStatus",
    "FilterCriteria",
    "WalkBudget",
    "DownloadTask",
    "DownloadStatistics",
    "BatchResult",
    "DownloadControl",
    # Config models
    "EngineConfig",
    "ListOptions",
    "ExploreOptions",
    "InfoOptions",
    "DownloadOptions",
    # Result models
    "ListStats",
    "ListResult",
    "TreeNode",
    "TreeStats",
    "TreeStructure",
    "InfoResult",
    "DownloadResult",
]

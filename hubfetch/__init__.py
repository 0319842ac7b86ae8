"""
HubFetch: budget-bounded discovery and resumable download of files from a
remote model-hub repository tree.
"""

from .infrastructure.error_handler import ErrorCode, RepositoryError
from .interfaces.api import FetchEngine, create_engine
from .models import (
    DownloadOptions,
    DownloadResult,
    EngineConfig,
    ExploreOptions,
    InfoOptions,
    InfoResult,
    ListOptions,
    ListResult,
    TreeStructure,
)

__version__ = "0.1.0"

__all__ = [
    "ErrorCode",
    "RepositoryError",
    "FetchEngine",
    "create_engine",
    "EngineConfig",
    "ListOptions",
    "ExploreOptions",
    "InfoOptions",
    "DownloadOptions",
    "ListResult",
    "TreeStructure",
    "InfoResult",
    "DownloadResult",
    "__version__",
]

"""
Configuration models for HubFetch.

``EngineConfig`` holds process-level settings; the option classes describe
one ``list``/``explore``/``download`` call. Legacy option aliases are
resolved once, in ``from_mapping``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional

from .download import FilterCriteria
from ..infrastructure.error_handler import (
    limit_exceeded_error, path_traversal_error, validation_error
)


CONFIG_VERSION = 1
SORT_KEYS = ("name", "size", "type")
MAX_FILES_LIMIT = 10000
MAX_DEPTH_LIMIT = 20

ProgressCallback = Callable[[str, int, Optional[int]], None]


@dataclass
class EngineConfig:
    """
    Process-level settings for a FetchEngine.

    Download timeouts scale with the expected file size: the read (stall)
    timeout is ``size / download_min_throughput`` seconds, clamped to
    ``[download_timeout_floor, download_timeout_ceiling]``.
    """

    version: int = CONFIG_VERSION

    # Remote endpoints
    api_base_url: str = "https://huggingface.co/api/models"
    download_base_url: str = "https://huggingface.co"
    user_agent: str = "hubfetch/0.1.0"

    # HTTP transport and retry policy
    request_timeout: float = 30.0
    max_sockets: int = 10
    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    # Download scheduling
    max_concurrent_downloads: int = 5
    task_max_retries: int = 3
    chunk_size: int = 64 * 1024
    download_min_throughput: int = 100 * 1024  # bytes per second
    download_timeout_floor: float = 30.0
    download_timeout_ceiling: float = 3600.0

    # Result cache
    cache_max_size: int = 100
    cache_max_memory: int = 50 * 1024 * 1024
    cache_default_ttl: float = 300.0
    listing_ttl: float = 60.0
    cache_sweep_interval: float = 60.0
    cache_policy: str = "lru"

    def __post_init__(self) -> None:
        if self.version != CONFIG_VERSION:
            raise ValueError(f"Unsupported config version: {self.version}")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.task_max_retries < 0:
            raise ValueError("task_max_retries cannot be negative")
        if self.max_concurrent_downloads <= 0:
            raise ValueError("max_concurrent_downloads must be positive")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.download_min_throughput <= 0:
            raise ValueError("download_min_throughput must be positive")
        if not 0 < self.download_timeout_floor <= self.download_timeout_ceiling:
            raise ValueError("download timeout floor must be positive and not above the ceiling")
        if self.cache_policy not in ("lru", "lfu", "fifo"):
            raise ValueError(f"Invalid cache_policy: {self.cache_policy}")

    def download_timeout(self, expected_size: Optional[int]) -> float:
        """Stall window in seconds for a file of ``expected_size`` bytes."""

        if expected_size is None:
            return self.download_timeout_floor
        scaled = expected_size / self.download_min_throughput
        return max(self.download_timeout_floor, min(scaled, self.download_timeout_ceiling))


####
##      PER-OPERATION OPTIONS
#####
def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _first(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return None


def _parse_size_option(name: str, value: Any) -> Optional[int]:
    from ..core.patterns import parse_size

    try:
        return parse_size(value)
    except ValueError as e:
        raise validation_error(name, str(e), value) from e


def _filters_from_mapping(data: Mapping[str, Any]) -> FilterCriteria:
    from ..core.patterns import FILE_TYPES

    file_types = set(_as_list(_first(data, "file_types", "types")))
    unknown = file_types - FILE_TYPES
    if unknown:
        raise validation_error(
            "file_types",
            f"unknown file types {sorted(unknown)}; expected some of {sorted(FILE_TYPES)}",
            sorted(unknown)
        )

    return FilterCriteria(
        include_patterns=_as_list(_first(data, "include", "pattern", "allow_patterns", "files")),
        exclude_patterns=_as_list(_first(data, "exclude", "ignore_patterns")),
        max_file_size=_parse_size_option(
            "max_size", _first(data, "max_size", "max_size_per_file", "maxSize")
        ),
        min_file_size=_parse_size_option("min_size", _first(data, "min_size", "minSize")),
        file_types=file_types,
        include_hidden=bool(data.get("include_hidden", True)),
        search=_first(data, "search", "search_query"),
    )


def _check_relative_path(field_name: str, value: str) -> str:
    value = (value or "").replace("\\", "/").strip("/")
    if ".." in value.split("/") or value.startswith("~"):
        raise path_traversal_error(field_name, value)
    return value


def _check_budget(max_files: Any, max_depth: Any) -> None:
    if isinstance(max_files, bool) or not isinstance(max_files, int) or max_files < 1:
        raise validation_error("max_files", "max_files must be a positive integer", max_files)
    if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 0:
        raise validation_error("max_depth", "max_depth cannot be negative", max_depth)
    if max_files > MAX_FILES_LIMIT:
        raise limit_exceeded_error("max_files", MAX_FILES_LIMIT, max_files)
    if max_depth > MAX_DEPTH_LIMIT:
        raise limit_exceeded_error("max_depth", MAX_DEPTH_LIMIT, max_depth)


def _check_revision(revision: Any) -> None:
    if not isinstance(revision, str) or not revision or ".." in revision:
        raise validation_error("revision", "revision must be a branch, tag or commit", revision)


@dataclass
class ListOptions:
    """Options for ``FetchEngine.list``."""

    path: str = ""
    revision: str = "main"
    recursive: bool = True
    max_files: int = 100
    max_depth: int = 3
    sort_by: str = "name"
    filters: FilterCriteria = field(default_factory=FilterCriteria)
    token: Optional[str] = None

    def __post_init__(self) -> None:
        self.path = _check_relative_path("path", self.path)
        _check_revision(self.revision)
        _check_budget(self.max_files, self.max_depth)
        if self.sort_by not in SORT_KEYS:
            raise validation_error("sort_by", f"sort_by must be one of {list(SORT_KEYS)}", self.sort_by)

    @property
    def effective_max_depth(self) -> int:
        return self.max_depth if self.recursive else 0

    @classmethod
    def _common_kwargs(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"filters": _filters_from_mapping(data)}
        aliases = {
            "path": ("path",),
            "revision": ("revision",),
            "recursive": ("recursive",),
            "max_files": ("max_files", "maxFiles"),
            "max_depth": ("max_depth", "maxDepth"),
            "sort_by": ("sort_by", "sort"),
            "token": ("token",),
        }
        for name, keys in aliases.items():
            value = _first(data, *keys)
            if value is not None:
                kwargs[name] = value
        return kwargs

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "ListOptions":
        """Build options from a loosely-typed mapping, resolving aliases."""

        return cls(**cls._common_kwargs(data or {}))


@dataclass
class ExploreOptions:
    """Options for ``FetchEngine.explore``."""

    path: str = ""
    revision: str = "main"
    max_depth: int = 3
    max_files: int = 1000
    tree_view: bool = False
    token: Optional[str] = None

    def __post_init__(self) -> None:
        self.path = _check_relative_path("path", self.path)
        _check_revision(self.revision)
        _check_budget(self.max_files, self.max_depth)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "ExploreOptions":
        data = data or {}
        kwargs: Dict[str, Any] = {}
        aliases = {
            "path": ("path",),
            "revision": ("revision",),
            "max_depth": ("max_depth", "maxDepth"),
            "max_files": ("max_files", "maxFiles"),
            "tree_view": ("tree_view", "tree"),
            "token": ("token",),
        }
        for name, keys in aliases.items():
            value = _first(data, *keys)
            if value is not None:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class InfoOptions:
    """Options for ``FetchEngine.info``; no revision means the default branch."""

    revision: Optional[str] = None
    token: Optional[str] = None

    def __post_init__(self) -> None:
        if self.revision is not None:
            _check_revision(self.revision)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "InfoOptions":
        data = data or {}
        return cls(revision=_first(data, "revision"), token=_first(data, "token"))


@dataclass
class DownloadOptions(ListOptions):
    """Options for ``FetchEngine.download``; extends the listing options."""

    force: bool = False
    max_concurrent: Optional[int] = None
    max_retries: Optional[int] = None
    on_progress: Optional[ProgressCallback] = None
    cancel_event: Optional[asyncio.Event] = None  # Set by the caller to stop admitting transfers

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.max_concurrent is not None and self.max_concurrent <= 0:
            raise validation_error("max_concurrent", "max_concurrent must be positive", self.max_concurrent)
        if self.max_retries is not None and self.max_retries < 0:
            raise validation_error("max_retries", "max_retries cannot be negative", self.max_retries)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None) -> "DownloadOptions":
        data = data or {}
        kwargs = cls._common_kwargs(data)
        force = _first(data, "force", "force_redownload")
        if force is not None:
            kwargs["force"] = bool(force)
        for name, keys in {
            "max_concurrent": ("max_concurrent", "maxConcurrent"),
            "max_retries": ("max_retries", "maxRetries"),
            "on_progress": ("on_progress", "onProgress"),
            "cancel_event": ("cancel_event", "signal"),
        }.items():
            value = _first(data, *keys)
            if value is not None:
                kwargs[name] = value
        return cls(**kwargs)

    def listing_options(self) -> ListOptions:
        """The listing part of these options, as a plain ListOptions."""

        names = {f.name for f in fields(ListOptions)}
        return ListOptions(**{name: getattr(self, name) for name in names})


__all__ = [
    "CONFIG_VERSION",
    "SORT_KEYS",
    "MAX_FILES_LIMIT",
    "MAX_DEPTH_LIMIT",
    "ProgressCallback",
    "EngineConfig",
    "ListOptions",
    "ExploreOptions",
    "InfoOptions",
    "DownloadOptions",
]

"""
Download domain models for HubFetch.

This module contains data classes and enums representing walk budgets,
filter criteria, download tasks, batch outcomes and statistics.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from .repository import TreeEntry
from ..infrastructure.error_handler import RepositoryError
from ..infrastructure.logger import logger


PART_SUFFIX = ".part"


class DownloadStatus(Enum):
    """Lifecycle of a single download task."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"        # Already present locally with the expected size
    CANCELLED = "cancelled"    # Never admitted because the batch was cancelled


@dataclass
class FilterCriteria:
    """Path predicate evaluated over already-fetched entry metadata."""

    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    max_file_size: Optional[int] = None  # Size in bytes
    min_file_size: Optional[int] = None  # Size in bytes
    file_types: Set[str] = field(default_factory=set)  # Preset categories, e.g. {"models"}
    include_hidden: bool = True
    search: Optional[str] = None

    def matches_path(self, path: str) -> bool:
        """Check if a given path matches the pattern part of the criteria."""

        from ..core.patterns import get_file_type, matches, matches_search

        if self.include_patterns:
            if not any(matches(path, pattern) for pattern in self.include_patterns):
                return False

        if self.exclude_patterns:
            if any(matches(path, pattern) for pattern in self.exclude_patterns):
                return False

        if not self.include_hidden and any(part.startswith('.') for part in path.split('/')):
            return False

        if self.file_types and get_file_type(path) not in self.file_types:
            return False

        if self.search and not matches_search(path, self.search):
            return False

        return True

    def matches_size(self, size: Optional[int]) -> bool:
        """Unknown sizes always pass the size bounds."""

        if size is None:
            return True
        if self.max_file_size is not None and size > self.max_file_size:
            return False
        if self.min_file_size is not None and size < self.min_file_size:
            return False
        return True


@dataclass
class WalkBudget:
    """Counters shared across one walk invocation."""

    max_depth: int = 3
    max_files: int = 100
    files_yielded: int = 0
    truncated_paths: Set[str] = field(default_factory=set)

    @property
    def exhausted(self) -> bool:
        return self.files_yielded >= self.max_files

    @property
    def truncated(self) -> bool:
        return bool(self.truncated_paths)

    def can_descend(self, depth: int) -> bool:
        """Whether a directory at ``depth`` may have its children expanded."""

        return depth < self.max_depth and not self.exhausted

    def truncate(self, path: str) -> None:
        self.truncated_paths.add(path or "/")


@dataclass
class DownloadTask:
    """One file admitted into a download batch."""

    file: TreeEntry
    target_path: Path
    status: DownloadStatus = DownloadStatus.PENDING
    retry_count: int = 0
    bytes_transferred: int = 0
    error: Optional[RepositoryError] = None

    @property
    def temp_path(self) -> Path:
        return self.target_path.with_name(self.target_path.name + PART_SUFFIX)

    @property
    def expected_size(self) -> Optional[int]:
        return self.file.size

    def partial_size(self) -> int:
        """Bytes already staged in the ``.part`` file."""

        try:
            return self.temp_path.stat().st_size
        except FileNotFoundError:
            return 0

    def is_complete_on_disk(self) -> bool:
        """Target exists with exactly the expected size."""

        if self.expected_size is None:
            return False
        try:
            return self.target_path.stat().st_size == self.expected_size
        except FileNotFoundError:
            return False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.file.path,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "bytes": self.bytes_transferred,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class DownloadStatistics:
    """Detailed statistics for a download batch."""

    total_files: int = 0
    downloaded_files: int = 0
    skipped_files: int = 0
    failed_files: int = 0
    cancelled_files: int = 0
    total_bytes: int = 0
    expected_bytes: int = 0
    retries: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""

        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def download_speed(self) -> float:
        """Calculate average download speed in bytes/second."""

        duration = self.duration_seconds
        if duration > 0 and self.total_bytes > 0:
            return self.total_bytes / duration
        return 0.0

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage."""

        total_attempted = self.downloaded_files + self.failed_files
        if total_attempted > 0:
            return (self.downloaded_files / total_attempted) * 100.0
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "downloaded_files": self.downloaded_files,
            "skipped_files": self.skipped_files,
            "failed_files": self.failed_files,
            "cancelled_files": self.cancelled_files,
            "total_bytes": self.total_bytes,
            "expected_bytes": self.expected_bytes,
            "retries": self.retries,
            "duration_seconds": round(self.duration_seconds, 3),
            "download_speed": round(self.download_speed, 1),
            "success_rate": round(self.success_rate, 1),
        }


@dataclass
class BatchResult:
    """Outcome of ``DownloadScheduler.download_batch``."""

    succeeded: List[DownloadTask] = field(default_factory=list)
    failed: List[DownloadTask] = field(default_factory=list)
    skipped: List[DownloadTask] = field(default_factory=list)
    cancelled: List[DownloadTask] = field(default_factory=list)
    stats: DownloadStatistics = field(default_factory=DownloadStatistics)

    @property
    def success(self) -> bool:
        """At least one file is in place, or nothing went wrong at all."""

        if self.succeeded or self.skipped:
            return True
        return not self.failed and not self.cancelled

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded or self.skipped)

    def errors(self) -> List[Dict[str, Any]]:
        return [
            {"file": task.file.path, **(task.error.to_dict() if task.error else {})}
            for task in self.failed
        ]


####
##      BATCH CONTROL
#####
class DownloadControl:
    """
    Cancel and pause signals for one download batch.

    Signals only gate admission: a cancelled or paused batch starts no new
    transfers, while transfers already running finish on their own.
    A caller may pass its own ``cancel_event`` to cancel from outside.
    """

    def __init__(self, cancel_event: Optional[asyncio.Event] = None):
        self._cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self._pause_event = asyncio.Event()
        self._pause_event.set()  # Set while running

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._pause_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def pause(self) -> None:
        if not self.is_cancelled:
            self._pause_event.clear()

    def resume(self) -> None:
        self._pause_event.set()

    async def wait_if_paused(self) -> None:
        """Block while paused; returns early once the batch is cancelled."""

        if not self.is_paused or self.is_cancelled:
            return

        logger.debug("Download batch is paused, waiting for resume...")
        waiters = [
            asyncio.ensure_future(self._pause_event.wait()),
            asyncio.ensure_future(self._cancel_event.wait())
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        logger.debug("Download batch resumed")


__all__ = [
    "PART_SUFFIX",
    "DownloadStatus",
    "FilterCriteria",
    "WalkBudget",
    "DownloadTask",
    "DownloadStatistics",
    "BatchResult",
    "DownloadControl",
]

"""
Scheduler for running a batch of file downloads with bounded
concurrency, per-task retry and resumable transfers.
"""

import asyncio
import os
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union
from urllib.parse import quote

import aiofiles
import httpx

from ..infrastructure.error_handler import (
    ErrorCode, RepositoryError, classify, is_retryable, path_traversal_error
)
from ..infrastructure.http_client import HttpClient
from ..infrastructure.logger import logger
from ..infrastructure.retry_manager import RetryManager
from ..models.config import EngineConfig, ProgressCallback
from ..models.download import (
    BatchResult, DownloadControl, DownloadStatistics, DownloadStatus, DownloadTask
)
from ..models.repository import RepositoryId, TreeEntry


def safe_join(root: Path, relative: str) -> Path:
    """
    Join a remote POSIX path onto ``root``, refusing to leave it.

    Raises:
        RepositoryError: PATH_TRAVERSAL for absolute paths, ``..`` segments
            or anything resolving outside ``root``
    """
    parts = PurePosixPath(relative).parts
    if not parts or relative.startswith("/") or "\\" in relative or ".." in parts:
        raise path_traversal_error("path", relative)

    candidate = root.joinpath(*parts)
    resolved_root = root.resolve()
    if resolved_root not in candidate.resolve().parents:
        raise path_traversal_error("path", relative)
    return candidate


####
##      DOWNLOAD SCHEDULER
#####
class DownloadScheduler:
    """
    Runs one DownloadTask per file through a fixed-size pool of slots.

    Each task owns its ``.part`` staging file; the only state shared
    between tasks is the slot counter. Cancel and pause signals belong to
    each batch through its DownloadControl, so concurrent batches on one
    scheduler never see each other's signals.
    """

    def __init__(
        self,
        http_client: HttpClient,
        config: Optional[EngineConfig] = None,
        retry_manager: Optional[RetryManager] = None
    ):
        self.http_client = http_client
        self.config = config or EngineConfig()
        self.retry_manager = retry_manager or http_client.retry_manager
        self.active_slots = 0
        self.peak_slots = 0

    def file_url(self, repo_id: RepositoryId, revision: str, path: str) -> str:
        return (
            f"{self.config.download_base_url}/{repo_id}/resolve/"
            f"{quote(revision, safe='')}/{quote(path, safe='/')}"
        )

    async def download_batch(
        self,
        repo_id: RepositoryId,
        revision: str,
        files: List[TreeEntry],
        target_dir: Union[str, Path],
        max_concurrent: Optional[int] = None,
        max_retries: Optional[int] = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        control: Optional[DownloadControl] = None
    ) -> BatchResult:
        """
        Download ``files`` under ``target_dir``.

        Args:
            repo_id: Repository the files belong to
            revision: Branch, tag or commit
            files: File entries, usually produced by a DirectoryWalker
            target_dir: Root directory; nothing is written outside it
            max_concurrent: Slot count, defaults to the configured value
            max_retries: Retries per task after the first attempt
            force: Re-download files that already exist locally
            on_progress: Called with ``(path, bytes_done, total)``
            control: Cancel and pause signals for this batch only

        Returns:
            BatchResult grouping tasks by terminal status
        """
        root = Path(target_dir)
        control = control if control is not None else DownloadControl()
        limit = max_concurrent or self.config.max_concurrent_downloads
        retries = self.config.task_max_retries if max_retries is None else max_retries
        semaphore = asyncio.Semaphore(limit)

        stats = DownloadStatistics(start_time=datetime.now(), total_files=len(files))
        stats.expected_bytes = sum(entry.size or 0 for entry in files)

        tasks: List[DownloadTask] = []
        for entry in files:
            try:
                target = safe_join(root, entry.path)
            except RepositoryError as e:
                tasks.append(DownloadTask(
                    file=entry, target_path=root, status=DownloadStatus.FAILED, error=e
                ))
                logger.error(f"Refusing to write {entry.path!r} outside {root}")
                continue
            tasks.append(DownloadTask(file=entry, target_path=target))

        logger.info(
            f"Downloading {len(tasks)} files from {repo_id}@{revision} "
            f"with {limit} concurrent transfers"
        )

        runnable = [task for task in tasks if task.status is DownloadStatus.PENDING]
        await asyncio.gather(*(
            self._run_task(
                task, repo_id, revision, semaphore, retries, force, on_progress, stats, control
            )
            for task in runnable
        ))

        result = BatchResult(stats=stats)
        for task in tasks:
            if task.status is DownloadStatus.DONE:
                result.succeeded.append(task)
            elif task.status is DownloadStatus.SKIPPED:
                result.skipped.append(task)
            elif task.status is DownloadStatus.CANCELLED:
                result.cancelled.append(task)
            else:
                result.failed.append(task)

        if result.cancelled:
            logger.info(f"Download cancelled, {len(result.cancelled)} files were not started")

        stats.downloaded_files = len(result.succeeded)
        stats.skipped_files = len(result.skipped)
        stats.failed_files = len(result.failed)
        stats.cancelled_files = len(result.cancelled)
        stats.retries = sum(task.retry_count for task in tasks)
        stats.end_time = datetime.now()

        logger.info(
            f"Download finished: {stats.downloaded_files} downloaded, "
            f"{stats.skipped_files} skipped, {stats.failed_files} failed, "
            f"{stats.total_bytes} bytes in {stats.duration_seconds:.1f}s"
        )
        return result

    async def _run_task(
        self,
        task: DownloadTask,
        repo_id: RepositoryId,
        revision: str,
        semaphore: asyncio.Semaphore,
        max_retries: int,
        force: bool,
        on_progress: Optional[ProgressCallback],
        stats: DownloadStatistics,
        control: DownloadControl
    ) -> None:
        """Acquire a slot, then drive one task to a terminal status."""

        if control.is_cancelled:
            task.status = DownloadStatus.CANCELLED
            return

        async with semaphore:
            await control.wait_if_paused()
            if control.is_cancelled:
                task.status = DownloadStatus.CANCELLED
                return

            self.active_slots += 1
            self.peak_slots = max(self.peak_slots, self.active_slots)
            try:
                url = self.file_url(repo_id, revision, task.file.path)
                await self._execute_with_retries(task, url, max_retries, force, on_progress, stats)
            finally:
                self.active_slots -= 1

    async def _execute_with_retries(
        self,
        task: DownloadTask,
        url: str,
        max_retries: int,
        force: bool,
        on_progress: Optional[ProgressCallback],
        stats: DownloadStatistics
    ) -> None:
        if force:
            task.temp_path.unlink(missing_ok=True)
        elif task.is_complete_on_disk():
            task.status = DownloadStatus.SKIPPED
            logger.debug(f"Skipping existing file: {task.file.path}")
            return

        while True:
            task.status = DownloadStatus.RUNNING
            try:
                received = await self._transfer(task, url, on_progress)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify(e)
                if not is_retryable(error) or task.retry_count >= max_retries:
                    task.status = DownloadStatus.FAILED
                    task.error = error
                    logger.error(f"Failed to download {task.file.path}: {error.message}")
                    return

                delay = self.retry_manager.compute_delay(task.retry_count, error)
                task.retry_count += 1
                task.status = DownloadStatus.PENDING
                logger.warning(
                    f"Retrying {task.file.path} ({task.retry_count}/{max_retries}) "
                    f"in {delay:.2f}s: {error.message}"
                )
                await asyncio.sleep(delay)
                continue

            stats.total_bytes += received
            task.status = DownloadStatus.DONE
            logger.debug(f"Downloaded {task.file.path} ({task.bytes_transferred} bytes)")
            return

    async def _transfer(
        self,
        task: DownloadTask,
        url: str,
        on_progress: Optional[ProgressCallback]
    ) -> int:
        """
        One transfer attempt: resume from the ``.part`` file when possible,
        verify the size, then atomically move it into place.

        Returns:
            Bytes received over the network during this attempt
        """
        task.target_path.parent.mkdir(parents=True, exist_ok=True)
        expected = task.expected_size
        offset = task.partial_size()

        if expected is not None and offset > expected:
            task.temp_path.unlink()
            offset = 0
        if expected is not None and offset and offset == expected:
            os.replace(task.temp_path, task.target_path)
            task.bytes_transferred = offset
            return 0

        headers = {"Range": f"bytes={offset}-"} if offset else None
        timeout = httpx.Timeout(
            self.http_client.timeout,
            read=self.config.download_timeout(expected)
        )

        received = 0
        async with self.http_client.download(url, headers=headers, timeout=timeout, max_retries=1) as response:
            if offset and response.status_code != 206:
                logger.info(f"Server ignored range request for {task.file.path}, restarting from zero")
                offset = 0

            written = offset
            async with aiofiles.open(task.temp_path, "ab" if offset else "wb") as fh:
                async for chunk in self.http_client.iter_bytes(response, self.config.chunk_size):
                    await fh.write(chunk)
                    written += len(chunk)
                    received += len(chunk)
                    task.bytes_transferred = written
                    self._report(on_progress, task.file.path, written, expected)

        if expected is not None and written != expected:
            task.temp_path.unlink(missing_ok=True)
            raise RepositoryError(
                ErrorCode.NETWORK_ERROR,
                f"Size mismatch for {task.file.path}: expected {expected} bytes, got {written}",
                {"expected": expected, "received": written}
            )

        os.replace(task.temp_path, task.target_path)
        return received

    @staticmethod
    def _report(
        on_progress: Optional[ProgressCallback],
        path: str,
        done: int,
        total: Optional[int]
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(path, done, total)
        except Exception as e:
            logger.warning(f"Progress callback failed for {path}: {e}")


__all__ = ["DownloadScheduler", "safe_join"]

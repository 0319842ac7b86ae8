"""
High-level programmatic API for HubFetch.

``FetchEngine`` composes the walker, explorer and download scheduler over
one shared HttpClient and ResultCache. Operations never raise for
operational failures; each returns a result whose ``error`` field carries
the classified RepositoryError.
"""

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Set, Type, TypeVar, Union
from urllib.parse import quote

from ..core.explorer import TreeExplorer
from ..core.patterns import get_extension
from ..core.scheduler import DownloadScheduler
from ..core.walker import DirectoryWalker, sort_entries
from ..infrastructure.cache import EvictionPolicy, ResultCache, make_cache_key
from ..infrastructure.error_handler import ErrorCode, RepositoryError, validation_error
from ..infrastructure.http_client import HttpClient
from ..infrastructure.logger import logger
from ..infrastructure.retry_manager import RetryConfig, RetryManager
from ..models.config import DownloadOptions, EngineConfig, ExploreOptions, InfoOptions, ListOptions
from ..models.download import DownloadControl, WalkBudget
from ..models.repository import RepositoryId
from ..models.results import DownloadResult, InfoResult, ListResult, ListStats, TreeStructure


OptionsT = TypeVar("OptionsT", ListOptions, ExploreOptions, DownloadOptions, InfoOptions)
OptionsArg = Union[None, Mapping[str, Any], ListOptions, ExploreOptions, DownloadOptions, InfoOptions]


def _coerce_options(options: OptionsArg, cls: Type[OptionsT]) -> OptionsT:
    if options is None:
        return cls()
    if isinstance(options, cls):
        return options
    if isinstance(options, Mapping):
        return cls.from_mapping(options)
    raise validation_error("options", f"expected a mapping or {cls.__name__}", type(options).__name__)


class FetchEngine:
    """
    Discovery and download façade over a remote repository tree.

    Args:
        http_client: Shared pooled client
        cache: Shared listing cache
        config: Engine settings
        verbose: Enable debug logging
    """

    def __init__(
        self,
        http_client: HttpClient,
        cache: ResultCache,
        config: Optional[EngineConfig] = None,
        verbose: bool = False
    ):
        self.config = config or EngineConfig()
        self.http_client = http_client
        self.cache = cache
        self.verbose = verbose

        self.walker = DirectoryWalker(http_client, cache, self.config)
        self.explorer = TreeExplorer(self.walker)
        self.scheduler = DownloadScheduler(http_client, self.config)
        self._controls: Set[DownloadControl] = set()

        logger.setLevel(logging.DEBUG if verbose else logging.INFO)
        if verbose:
            logger.debug("Verbose logging enabled")

    ####
    ##      CONFIGURATION
    #####
    def set_verbose(self, verbose: bool) -> None:
        self.verbose = verbose
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)
        if verbose:
            logger.debug("Verbose logging enabled")

    def set_token(self, token: Optional[str]) -> None:
        """Install a bearer token for all subsequent requests, or clear it with None."""

        self.http_client.set_auth_token(token)
        logger.debug("Access token installed" if token else "Access token cleared")

    def _apply_token(self, token: Optional[str]) -> None:
        if token:
            self.set_token(token)

    def get_cache_stats(self) -> dict:
        return self.cache.get_stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    def cancel_download(self) -> None:
        """
        Stop admitting new transfers in every download in progress.

        A download still walking the tree is cancelled too: its batch
        starts with the signal already set and admits nothing.
        """
        if not self._controls:
            logger.debug("No download in progress to cancel")
            return

        for control in self._controls:
            control.cancel()
        logger.info("Download cancelled, no new transfers will start")

    def pause_download(self) -> None:
        """Hold back new transfers until ``resume_download``; running ones finish."""

        if not self._controls:
            logger.debug("No download in progress to pause")
            return

        for control in self._controls:
            control.pause()
        logger.info("Download paused")

    def resume_download(self) -> None:
        for control in self._controls:
            control.resume()
        if self._controls:
            logger.info("Download resumed")

    ####
    ##      OPERATIONS
    #####
    async def list(self, repo_id: str, options: OptionsArg = None) -> ListResult:
        """
        List files under a path, bounded by depth and file count.

        Args:
            repo_id: ``owner/name``
            options: ListOptions or a mapping using option names or aliases

        Returns:
            ListResult with sorted files, stats and truncated paths
        """
        try:
            opts = _coerce_options(options, ListOptions)
            repo = RepositoryId.parse(repo_id)
            self._apply_token(opts.token)

            stats = ListStats()

            def on_directory(path, depth, entries):
                stats.directory_count += 1
                stats.total_files += sum(1 for entry in entries if entry.is_file)

            budget = WalkBudget(max_depth=opts.effective_max_depth, max_files=opts.max_files)
            files = await self.walker.list_all(
                repo, opts.revision, opts.path, budget, opts.filters, on_directory
            )
            files = sort_entries(files, opts.sort_by)

            stats.returned_files = len(files)
            stats.total_size = sum(entry.size or 0 for entry in files)
            for entry in files:
                extension = get_extension(entry.path)
                stats.file_types[extension] = stats.file_types.get(extension, 0) + 1

            if budget.truncated:
                logger.info(
                    f"Listing of {repo} truncated at {len(budget.truncated_paths)} paths; "
                    "refine the query to see more"
                )

            return ListResult(
                repo_id=str(repo),
                revision=opts.revision,
                path=opts.path,
                files=files,
                stats=stats,
                truncated_paths=sorted(budget.truncated_paths)
            )

        except RepositoryError as e:
            logger.error(f"Listing {repo_id} failed: {e.message}")
            return ListResult(repo_id=str(repo_id), error=e)

    async def explore(self, repo_id: str, options: OptionsArg = None) -> TreeStructure:
        """Scan the tree structure without downloading anything."""

        try:
            opts = _coerce_options(options, ExploreOptions)
            repo = RepositoryId.parse(repo_id)
            self._apply_token(opts.token)
            return await self.explorer.explore(repo, opts)

        except RepositoryError as e:
            logger.error(f"Exploring {repo_id} failed: {e.message}")
            return TreeStructure(repo_id=str(repo_id), error=e)

    def info_url(self, repo_id: RepositoryId, revision: Optional[str] = None) -> str:
        url = f"{self.config.api_base_url}/{repo_id}"
        if revision:
            url += f"/revision/{quote(revision, safe='')}"
        return url

    async def info(self, repo_id: str, options: OptionsArg = None) -> InfoResult:
        """
        Fetch the repository's metadata document.

        Args:
            repo_id: ``owner/name``
            options: InfoOptions or a mapping with ``revision``/``token``

        Returns:
            InfoResult carrying the JSON object returned by the hub
        """
        try:
            opts = _coerce_options(options, InfoOptions)
            repo = RepositoryId.parse(repo_id)
            self._apply_token(opts.token)

            url = self.info_url(repo, opts.revision)
            key = make_cache_key(kind="info", repo=str(repo), revision=opts.revision)

            async def fetch(headers):
                return await self.http_client.get(url, headers=headers)

            def parse(response):
                return self.http_client.decode_json(response, f"metadata response for {repo}")

            data = await self.cache.fetch_conditional(key, fetch, parse)
            if not isinstance(data, dict):
                raise RepositoryError(
                    ErrorCode.SERVER_ERROR,
                    f"Unexpected metadata response for {repo}",
                    {"type": type(data).__name__}
                )

            logger.debug(f"Fetched metadata for {repo}")
            return InfoResult(repo_id=str(repo), revision=opts.revision, data=data)

        except RepositoryError as e:
            logger.error(f"Fetching info for {repo_id} failed: {e.message}")
            return InfoResult(repo_id=str(repo_id), error=e)

    async def download(
        self,
        repo_id: str,
        target_dir: Union[str, Path],
        options: OptionsArg = None
    ) -> DownloadResult:
        """
        Download the files a listing with the same options would return.

        Args:
            repo_id: ``owner/name``
            target_dir: Local root; files keep their repository-relative paths
            options: DownloadOptions or a mapping using option names or aliases

        Returns:
            DownloadResult; ``partial`` when some files failed, ``error`` set
            when every file failed
        """
        control: Optional[DownloadControl] = None
        try:
            opts = _coerce_options(options, DownloadOptions)
            repo = RepositoryId.parse(repo_id)
            if not str(target_dir).strip():
                raise validation_error("target_dir", "target directory must not be empty", target_dir)
            self._apply_token(opts.token)

            # Registered before the walk so a cancel during listing is kept
            control = DownloadControl(opts.cancel_event)
            self._controls.add(control)

            budget = WalkBudget(max_depth=opts.effective_max_depth, max_files=opts.max_files)
            files = await self.walker.list_all(
                repo, opts.revision, opts.path, budget, opts.filters
            )
            files = sort_entries(files, opts.sort_by)

            if not files:
                logger.info(f"No files in {repo}@{opts.revision} matched the download filters")

            batch = await self.scheduler.download_batch(
                repo,
                opts.revision,
                files,
                target_dir,
                max_concurrent=opts.max_concurrent,
                max_retries=opts.max_retries,
                force=opts.force,
                on_progress=opts.on_progress,
                control=control
            )

            result = DownloadResult.from_batch(
                str(repo),
                opts.revision,
                str(target_dir),
                batch,
                sorted(budget.truncated_paths)
            )
            if result.partial:
                logger.warning(
                    f"Partial download: {len(result.failed_files)} of "
                    f"{batch.stats.total_files} files failed"
                )
            return result

        except RepositoryError as e:
            logger.error(f"Downloading {repo_id} failed: {e.message}")
            return DownloadResult(repo_id=str(repo_id), target_dir=str(target_dir), error=e)

        finally:
            if control is not None:
                self._controls.discard(control)

    ####
    ##      LIFECYCLE
    #####
    async def aclose(self) -> None:
        """Stop the cache sweeper and close the HTTP pool."""

        await self.cache.stop()
        await self.http_client.aclose()

    async def __aenter__(self) -> "FetchEngine":
        self.cache.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_engine(
    config: Optional[EngineConfig] = None,
    token: Optional[str] = None,
    verbose: bool = False,
    transport: Any = None
) -> FetchEngine:
    """
    Build a FetchEngine with its own HttpClient and ResultCache.

    This is the single place where default collaborators are constructed.
    """
    config = config or EngineConfig()

    retry_manager = RetryManager.from_config(RetryConfig(
        max_retries=config.max_retries,
        initial_delay=config.base_delay,
        max_delay=config.max_delay,
        jitter=config.jitter
    ))
    http_client = HttpClient(
        retry_manager=retry_manager,
        timeout=config.request_timeout,
        max_sockets=config.max_sockets,
        user_agent=config.user_agent,
        transport=transport
    )
    cache = ResultCache(
        max_size=config.cache_max_size,
        max_memory=config.cache_max_memory,
        default_ttl=config.cache_default_ttl,
        sweep_interval=config.cache_sweep_interval,
        policy=EvictionPolicy(config.cache_policy)
    )

    engine = FetchEngine(http_client, cache, config, verbose=verbose)
    if token:
        engine.set_token(token)
    return engine


__all__ = ["FetchEngine", "create_engine"]

"""
Budget-bounded, depth-first traversal of a remote repository tree.
"""

from contextlib import aclosing
from typing import AsyncIterator, Callable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .filter import FilterEngine
from .patterns import get_file_type
from ..infrastructure.cache import ResultCache, make_cache_key
from ..infrastructure.error_handler import RepositoryError
from ..infrastructure.http_client import HttpClient
from ..infrastructure.logger import logger
from ..models.config import EngineConfig
from ..models.download import FilterCriteria, WalkBudget
from ..models.repository import RepositoryId, TreeEntry, parse_listing


DirectoryCallback = Callable[[str, int, List[TreeEntry]], None]


def sort_entries(entries: List[TreeEntry], sort_by: str = "name") -> List[TreeEntry]:
    """
    Stable sort of a materialized listing; ties are broken by path.

    ``size`` sorts largest first with unknown sizes last.
    """
    if sort_by == "size":
        return sorted(entries, key=lambda e: (-(e.size if e.size is not None else -1), e.path))
    if sort_by == "type":
        return sorted(entries, key=lambda e: (get_file_type(e.path), e.extension, e.path))
    return sorted(entries, key=lambda e: (e.name.lower(), e.path))


class DirectoryWalker:
    """
    Lazily yields filtered file entries from a remote tree.

    Traversal is driven by an explicit stack of ``(path, depth)`` pairs.
    Every listing goes through the ResultCache, so abandoned walks still
    leave their fetched listings behind for the next caller.
    """

    def __init__(
        self,
        http_client: HttpClient,
        cache: ResultCache,
        config: Optional[EngineConfig] = None
    ):
        self.http_client = http_client
        self.cache = cache
        self.config = config or EngineConfig()

    def listing_url(self, repo_id: RepositoryId, revision: str, path: str = "") -> str:
        url = f"{self.config.api_base_url}/{repo_id}/tree/{quote(revision, safe='')}"
        if path:
            url += "/" + quote(path, safe="/")
        return url

    async def fetch_listing(
        self,
        repo_id: RepositoryId,
        revision: str,
        path: str = ""
    ) -> List[TreeEntry]:
        """
        Fetch one directory listing, consulting the cache first.

        The raw JSON array is cached; stale entries are revalidated with
        their ETag.
        """
        url = self.listing_url(repo_id, revision, path)
        key = make_cache_key(kind="tree", repo=str(repo_id), revision=revision, path=path)

        async def fetch(headers):
            return await self.http_client.get(url, headers=headers)

        def parse(response: httpx.Response):
            return self.http_client.decode_json(response, f"listing response for {path or '/'}")

        data = await self.cache.fetch_conditional(key, fetch, parse, ttl=self.config.listing_ttl)
        return parse_listing(data)

    async def walk(
        self,
        repo_id: RepositoryId,
        revision: str = "main",
        root_path: str = "",
        budget: Optional[WalkBudget] = None,
        criteria: Optional[FilterCriteria] = None,
        on_directory: Optional[DirectoryCallback] = None
    ) -> AsyncIterator[TreeEntry]:
        """
        Yield file entries passing ``criteria`` until the budget runs out.

        Args:
            repo_id: Repository to walk
            revision: Branch, tag or commit
            root_path: Directory to start from, depth 0
            budget: Shared depth/file counters; truncated directories are
                recorded in ``budget.truncated_paths``
            criteria: Path and size predicate applied to each file
            on_directory: Called with ``(path, depth, entries)`` for every
                listing fetched

        Raises:
            RepositoryError: When the root listing cannot be fetched
        """
        budget = budget if budget is not None else WalkBudget()
        filter_engine = FilterEngine(criteria or FilterCriteria())

        stack: List[Tuple[str, int]] = [(root_path, 0)]
        current: Optional[str] = None
        finished = False

        try:
            while stack:
                path, depth = stack.pop()

                if budget.exhausted:
                    budget.truncate(path)
                    continue

                current = path
                try:
                    entries = await self.fetch_listing(repo_id, revision, path)
                except RepositoryError as e:
                    if depth == 0:
                        raise
                    logger.warning(f"Skipping {path}: {e.message}")
                    continue

                if on_directory is not None:
                    on_directory(path, depth, entries)

                files = [entry for entry in entries if entry.is_file]
                directories = [entry for entry in entries if entry.is_directory]

                for entry in files:
                    if not filter_engine.should_include_file(entry):
                        continue
                    if budget.exhausted:
                        budget.truncate(path)
                        break
                    budget.files_yielded += 1
                    yield entry

                # Reversed so that siblings are popped in API order
                for directory in reversed(directories):
                    if budget.can_descend(depth):
                        stack.append((directory.path, depth + 1))
                    else:
                        budget.truncate(directory.path)

                current = None

            finished = True

        finally:
            if not finished:
                if current is not None:
                    budget.truncate(current)
                for path, _ in stack:
                    budget.truncate(path)

    async def list_all(
        self,
        repo_id: RepositoryId,
        revision: str = "main",
        root_path: str = "",
        budget: Optional[WalkBudget] = None,
        criteria: Optional[FilterCriteria] = None,
        on_directory: Optional[DirectoryCallback] = None
    ) -> List[TreeEntry]:
        """Materialize a walk into a list, in traversal order."""

        budget = budget if budget is not None else WalkBudget()
        entries: List[TreeEntry] = []

        async with aclosing(
            self.walk(repo_id, revision, root_path, budget, criteria, on_directory)
        ) as walk:
            async for entry in walk:
                entries.append(entry)

        logger.debug(
            f"Walked {repo_id}@{revision}/{root_path}: {len(entries)} files, "
            f"{len(budget.truncated_paths)} truncated paths"
        )
        return entries


__all__ = ["DirectoryWalker", "DirectoryCallback", "sort_entries"]

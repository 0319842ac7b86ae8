"""
Shared fixtures: an in-memory fake of the remote tree/resolve API served
through httpx.MockTransport.
"""

import re
from typing import Dict, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from hubfetch.infrastructure.cache import ResultCache
from hubfetch.infrastructure.http_client import HttpClient
from hubfetch.infrastructure.retry_manager import RetryManager
from hubfetch.models.config import EngineConfig


TREE_RE = re.compile(r"^/api/models/[^/]+/[^/]+/tree/[^/]+/?(?P<path>.*)$")
RESOLVE_RE = re.compile(r"^/[^/]+/[^/]+/resolve/[^/]+/(?P<path>.+)$")
INFO_RE = re.compile(r"^/api/models/(?P<repo>[^/]+/[^/]+)(?:/revision/(?P<revision>[^/]+))?$")


def file_entry(path: str, size: int = 10, lfs_size: int = None) -> dict:
    entry = {"type": "file", "path": path, "size": size, "oid": f"oid-{path}"}
    if lfs_size is not None:
        entry["lfs"] = {"size": lfs_size, "oid": "sha256"}
    return entry


def dir_entry(path: str) -> dict:
    return {"type": "directory", "path": path}


class FakeHub:
    """Serves listings from ``tree``, file bodies from ``files`` and metadata from ``info``."""

    def __init__(self):
        self.tree: Dict[str, List[dict]] = {}
        self.info: Dict[str, dict] = {}
        self.files: Dict[str, bytes] = {}
        self.failures: Dict[tuple, List[int]] = {}
        self.honor_range = True
        self.requests: List[httpx.Request] = []

    def add_file(self, path: str, content: bytes, directory: str = "") -> None:
        self.files[path] = content
        self.tree.setdefault(directory, []).append(file_entry(path, len(content)))

    def fail(self, kind: str, path: str, *statuses: int) -> None:
        self.failures.setdefault((kind, path), []).extend(statuses)

    def requests_for(self, kind: str) -> List[httpx.Request]:
        if kind == "info":
            return [r for r in self.requests if INFO_RE.match(r.url.path)]
        marker = "/tree/" if kind == "tree" else "/resolve/"
        return [r for r in self.requests if marker in r.url.path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url_path = request.url.path

        match = TREE_RE.match(url_path)
        if match:
            path = match.group("path").strip("/")
            queued = self.failures.get(("tree", path))
            if queued:
                return httpx.Response(queued.pop(0))
            if path not in self.tree:
                return httpx.Response(404)
            return httpx.Response(200, json=self.tree[path], headers={"ETag": f'"{path}-v1"'})

        match = RESOLVE_RE.match(url_path)
        if match:
            path = match.group("path")
            queued = self.failures.get(("file", path))
            if queued:
                return httpx.Response(queued.pop(0))
            if path not in self.files:
                return httpx.Response(404)
            body = self.files[path]
            range_header = request.headers.get("Range")
            if range_header and self.honor_range:
                start = int(range_header.split("=", 1)[1].rstrip("-"))
                return httpx.Response(206, content=body[start:])
            return httpx.Response(200, content=body)

        match = INFO_RE.match(url_path)
        if match:
            repo = match.group("repo")
            queued = self.failures.get(("info", repo))
            if queued:
                return httpx.Response(queued.pop(0))
            if repo not in self.info:
                return httpx.Response(404)
            return httpx.Response(200, json=self.info[repo], headers={"ETag": f'"{repo}-info"'})

        return httpx.Response(404)


@pytest.fixture
def hub():
    return FakeHub()


@pytest.fixture
def http_client(hub):
    return HttpClient(
        retry_manager=RetryManager(max_retries=3, jitter=False),
        transport=httpx.MockTransport(hub.handler)
    )


@pytest.fixture
def cache():
    return ResultCache()


@pytest.fixture
def config():
    return EngineConfig(jitter=False)


@pytest.fixture
def no_sleep():
    with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
        yield mock_sleep

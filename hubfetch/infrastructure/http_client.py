"""
Async HTTP client with connection reuse, classified errors and retries.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx

from .error_handler import ErrorCode, classify, classify_response, handle_api_error, RepositoryError
from .logger import logger
from .retry_manager import RetryManager


DEFAULT_USER_AGENT = "hubfetch/0.1.0"
TimeoutArg = Union[float, httpx.Timeout, None]


class HttpClient:
    """
    Pooled ``httpx.AsyncClient`` wrapper.

    Every request goes through the RetryManager; responses with a 4xx/5xx
    status and transport exceptions surface as RepositoryError only.
    """

    def __init__(
        self,
        retry_manager: Optional[RetryManager] = None,
        timeout: float = 30.0,
        max_sockets: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.retry_manager = retry_manager or RetryManager()
        self.timeout = timeout
        self.max_sockets = max_sockets
        self.requests_made = 0

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_connections=max_sockets,
                max_keepalive_connections=max_sockets
            ),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport
        )

    @property
    def has_auth_token(self) -> bool:
        return "Authorization" in self._client.headers

    def set_auth_token(self, token: Optional[str]) -> None:
        """Install a bearer token for all subsequent requests, or clear it."""

        if token:
            self._client.headers["Authorization"] = f"Bearer {token}"
        else:
            self._client.headers.pop("Authorization", None)

    @handle_api_error
    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: TimeoutArg = None,
        stream: bool = False
    ) -> httpx.Response:
        """Issue a single request; no retries here."""

        request_id = uuid.uuid4().hex[:12]
        request_headers = {"X-Request-ID": request_id}
        if headers:
            request_headers.update(headers)

        request = self._client.build_request(
            method,
            url,
            headers=request_headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT
        )

        logger.debug(f"[{request_id}] {method} {url}")
        started = time.perf_counter()
        self.requests_made += 1
        response = await self._client.send(request, stream=stream)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"[{request_id}] {response.status_code} {elapsed_ms:.0f}ms")

        error = classify_response(response)
        if error is not None:
            await response.aclose()
            raise error

        return response

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: TimeoutArg = None,
        max_retries: Optional[int] = None
    ) -> httpx.Response:
        """Execute a buffered request with retries."""

        return await self.retry_manager.execute(
            lambda: self._send(method, url, headers, timeout),
            max_retries=max_retries,
            description=f"{method} {url}"
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def head(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)

    @asynccontextmanager
    async def download(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: TimeoutArg = None,
        max_retries: Optional[int] = None
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming GET; the body is read by the caller.

        Only establishing the response is retried. The response is closed
        when the context exits.
        """
        response = await self.retry_manager.execute(
            lambda: self._send("GET", url, headers, timeout, stream=True),
            max_retries=max_retries,
            description=f"GET {url}"
        )
        try:
            yield response
        finally:
            await response.aclose()

    @staticmethod
    async def iter_bytes(response: httpx.Response, chunk_size: int = 65536) -> AsyncIterator[bytes]:
        """Stream a response body, classifying mid-stream transport failures."""

        try:
            async for chunk in response.aiter_bytes(chunk_size):
                yield chunk
        except RepositoryError:
            raise
        except Exception as e:
            raise classify(e) from e

    @staticmethod
    def decode_json(response: httpx.Response, description: str = "response") -> Any:
        """Parse a JSON body; a malformed body is a SERVER_ERROR."""

        try:
            return response.json()
        except ValueError as e:
            raise RepositoryError(ErrorCode.SERVER_ERROR, f"Malformed {description}") from e

    async def get_file_size(self, url: str) -> Optional[int]:
        """Content length reported by a HEAD request, or None."""

        try:
            response = await self.head(url)
        except RepositoryError as e:
            logger.warning(f"Could not determine file size for {url}: {e.message}")
            return None

        content_length = response.headers.get("content-length")
        return int(content_length) if content_length and content_length.isdigit() else None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["HttpClient", "DEFAULT_USER_AGENT"]

"""
Error taxonomy and classification for HubFetch.

Every transport or HTTP failure is converted exactly once into a
``RepositoryError`` tagged with a closed ``ErrorCode``. Components above
the HTTP layer only ever see these typed errors.
"""

import errno
import functools
import inspect
import socket
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx


class ErrorCode(Enum):
    """Closed set of error codes surfaced by the fetch engine."""

    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_PARAMS = "INVALID_PARAMS"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"


RETRYABLE_CODES = frozenset({
    ErrorCode.RATE_LIMIT,
    ErrorCode.SERVER_ERROR,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
})


DEFAULT_SUGGESTIONS: Dict[ErrorCode, List[str]] = {
    ErrorCode.NOT_FOUND: [
        "Check the repository id spelling (format: owner/name)",
        "Confirm that the repository, revision and path exist",
    ],
    ErrorCode.UNAUTHORIZED: [
        "Set an access token for private or gated repositories",
        "Verify that the access token is still valid",
    ],
    ErrorCode.FORBIDDEN: [
        "Confirm that your account has access to this repository",
        "Use an access token with read permission",
    ],
    ErrorCode.RATE_LIMIT: [
        "Wait before retrying",
        "Provide an access token to get a higher rate limit",
    ],
    ErrorCode.SERVER_ERROR: [
        "Retry later",
        "If the problem persists, check the hub status page",
    ],
    ErrorCode.NETWORK_ERROR: [
        "Check your network connection",
        "Retry later",
    ],
    ErrorCode.TIMEOUT: [
        "Check your network connection",
        "Increase the timeout or retry later",
    ],
    ErrorCode.INVALID_PARAMS: [
        "Check the parameter values",
    ],
    ErrorCode.PATH_TRAVERSAL: [
        "Use a plain repository id such as owner/name",
    ],
    ErrorCode.LIMIT_EXCEEDED: [
        "Refine your query with include/exclude patterns",
        "Raise max_files or max_depth",
    ],
}


class RepositoryError(Exception):
    """
    The single error type surfaced across the fetch engine boundary.

    Never mutated after construction.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = dict(details) if details else None
        self.suggestions = list(suggestions) if suggestions else list(DEFAULT_SUGGESTIONS[code])

    @property
    def retry_after(self) -> Optional[float]:
        """Server-provided delay in seconds, if any."""

        if self.details:
            return self.details.get("retry_after")
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "suggestions": list(self.suggestions),
        }
        if self.details:
            data["details"] = dict(self.details)
        return data

    def __repr__(self) -> str:
        return f"RepositoryError({self.code.value}, {self.message!r})"


####
##      CLASSIFICATION
#####
_STATUS_MAP = {
    401: (ErrorCode.UNAUTHORIZED, "Authentication failed"),
    403: (ErrorCode.FORBIDDEN, "Access forbidden"),
    404: (ErrorCode.NOT_FOUND, "Repository or resource not found"),
    429: (ErrorCode.RATE_LIMIT, "Rate limit exceeded"),
}

_ERRNO_MAP = {
    errno.ECONNRESET: (ErrorCode.NETWORK_ERROR, "Connection reset"),
    errno.ECONNREFUSED: (ErrorCode.NETWORK_ERROR, "Connection refused"),
    errno.ETIMEDOUT: (ErrorCode.TIMEOUT, "Connection timed out"),
}


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header value.

    Args:
        value: Header value, either delta-seconds or an HTTP date

    Returns:
        Seconds to wait, or None if not parseable
    """
    if not value:
        return None

    try:
        return max(0.0, float(int(value.strip())))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_response(response: httpx.Response) -> Optional[RepositoryError]:
    """
    Classify an HTTP response by status code.

    Returns:
        RepositoryError for 4xx/5xx responses, None otherwise
    """
    status = response.status_code
    if status < 400:
        return None

    details: Dict[str, Any] = {
        "status": status,
        "status_text": response.reason_phrase,
    }
    try:
        details["url"] = str(response.request.url)
    except RuntimeError:
        pass

    if status in _STATUS_MAP:
        code, message = _STATUS_MAP[status]
        suggestions = None
        if code is ErrorCode.RATE_LIMIT:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            if retry_after is not None:
                details["retry_after"] = retry_after
                suggestions = [f"Wait {retry_after:g} seconds before retrying"] + \
                    DEFAULT_SUGGESTIONS[code][1:]
        return RepositoryError(code, message, details, suggestions)

    if status >= 500:
        return RepositoryError(ErrorCode.SERVER_ERROR, f"Server error: {status}", details)

    return RepositoryError(
        ErrorCode.INVALID_PARAMS,
        f"Request rejected: {status}",
        details,
        ["Check the repository id, revision and path"]
    )


def classify(error: BaseException) -> RepositoryError:
    """
    Map a raw failure to a typed RepositoryError.

    Args:
        error: Any exception raised by the transport or by our own code

    Returns:
        The classified RepositoryError (the input itself if already classified)
    """
    if isinstance(error, RepositoryError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        classified = classify_response(error.response)
        if classified is not None:
            return classified

    if isinstance(error, httpx.TimeoutException):
        return RepositoryError(
            ErrorCode.TIMEOUT,
            "Request timed out",
            {"error": type(error).__name__, "message": str(error)}
        )

    if isinstance(error, httpx.ConnectError):
        return RepositoryError(
            ErrorCode.NETWORK_ERROR,
            "Connection failed",
            {"error": type(error).__name__, "message": str(error)}
        )

    if isinstance(error, socket.gaierror):
        return RepositoryError(
            ErrorCode.NETWORK_ERROR,
            "Could not resolve host name",
            {"error": type(error).__name__, "message": str(error)},
            ["Check your network connection", "Check your DNS settings"]
        )

    if isinstance(error, (TimeoutError, socket.timeout)):
        return RepositoryError(ErrorCode.TIMEOUT, "Request timed out", {"message": str(error)})

    if isinstance(error, OSError) and error.errno in _ERRNO_MAP:
        code, message = _ERRNO_MAP[error.errno]
        return RepositoryError(
            code, message,
            {"errno": errno.errorcode.get(error.errno, error.errno), "message": str(error)}
        )

    return RepositoryError(
        ErrorCode.NETWORK_ERROR,
        str(error) or "Network request failed",
        {"error": type(error).__name__}
    )


def is_retryable(error: RepositoryError) -> bool:
    """True exactly for rate limits, server errors, network errors and timeouts."""

    return error.code in RETRYABLE_CODES


####
##      CONSTRUCTORS FOR INPUT ERRORS
#####
def validation_error(field: str, message: str, value: Any = None) -> RepositoryError:
    """Build an INVALID_PARAMS error for a single field."""

    return RepositoryError(
        ErrorCode.INVALID_PARAMS,
        f"Invalid parameter: {message}",
        {"field": field, "value": value},
        [f"Check the value of the {field} parameter"]
    )


def path_traversal_error(field: str, value: Any) -> RepositoryError:
    return RepositoryError(
        ErrorCode.PATH_TRAVERSAL,
        "Path traversal attempt detected",
        {"field": field, "value": value}
    )


def limit_exceeded_error(field: str, limit: int, value: Any) -> RepositoryError:
    return RepositoryError(
        ErrorCode.LIMIT_EXCEEDED,
        f"{field} exceeds the hard limit of {limit}",
        {"field": field, "value": value, "limit": limit}
    )


def handle_api_error(func: Callable) -> Callable:
    """
    Decorator converting any raw exception raised by ``func`` into a
    classified RepositoryError. Works for plain and async callables.
    """

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except RepositoryError:
                raise
            except Exception as e:
                raise classify(e) from e

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RepositoryError:
            raise
        except Exception as e:
            raise classify(e) from e

    return wrapper


__all__ = [
    "ErrorCode",
    "RepositoryError",
    "RETRYABLE_CODES",
    "DEFAULT_SUGGESTIONS",
    "classify",
    "classify_response",
    "is_retryable",
    "parse_retry_after",
    "validation_error",
    "path_traversal_error",
    "limit_exceeded_error",
    "handle_api_error",
]

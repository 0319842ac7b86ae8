"""
Glob matching, file-type presets and size helpers.
"""

import fnmatch
import posixpath
import re
from typing import Dict, List, Optional, Union


PRESET_PATTERNS: Dict[str, List[str]] = {
    "models": ["*.safetensors", "*.bin", "*.pt", "*.pth", "*.onnx", "*.ckpt", "*.h5", "*.gguf"],
    "configs": ["*.json", "*.yaml", "*.yml", "*.toml", "config.*"],
    "docs": ["*.md", "*.txt", "*.rst", "README*", "LICENSE*"],
    "code": ["*.py", "*.js", "*.ts", "*.jsx", "*.tsx", "*.java", "*.cpp", "*.c"],
    "data": ["*.csv", "*.tsv", "*.jsonl", "*.parquet", "*.arrow"],
    "media": ["*.jpg", "*.jpeg", "*.png", "*.gif", "*.mp4", "*.mp3", "*.wav"],
    "archives": ["*.zip", "*.tar", "*.tar.gz", "*.tgz", "*.tar.bz2", "*.rar", "*.7z"],
}

FILE_TYPES = frozenset(PRESET_PATTERNS) | {"other"}

_WILDCARDS = set("*?[")
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)(?:I?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}


def matches(path: str, pattern: str) -> bool:
    """
    Glob-match a repository path.

    A bare filename (``config.json``) matches at any depth, a pattern without
    ``/`` is also tried against the basename, and ``**/`` may match zero
    directories.
    """
    path = path.replace("\\", "/")
    if not pattern:
        return True

    if "/" not in pattern and not (_WILDCARDS & set(pattern)):
        return path == pattern or path.endswith("/" + pattern)

    candidates = {pattern, pattern.replace("**/", "")}
    if "/" not in pattern:
        name = posixpath.basename(path)
        if any(fnmatch.fnmatchcase(name, p) for p in candidates):
            return True

    return any(fnmatch.fnmatchcase(path, p) for p in candidates)


def matches_any(path: str, patterns: Union[str, List[str], None]) -> bool:
    if not patterns:
        return True
    if isinstance(patterns, str):
        patterns = [patterns]
    return any(matches(path, p) for p in patterns)


def matches_search(path: str, query: Optional[str]) -> bool:
    """Substring search, or a glob when the query contains ``*``."""

    if not query:
        return True
    if "*" in query:
        return matches(path, query)
    return query.lower() in path.lower()


def get_file_type(path: str) -> str:
    """Preset category of a path, ``other`` if none applies."""

    name = posixpath.basename(path)
    for file_type, patterns in PRESET_PATTERNS.items():
        if any(fnmatch.fnmatchcase(name.lower(), p.lower()) for p in patterns):
            return file_type
    return "other"


def get_extension(path: str) -> str:
    """Extension used in statistics, ``no-extension`` when absent."""

    ext = posixpath.splitext(posixpath.basename(path))[1].lower()
    return ext or "no-extension"


def parse_size(value: Union[int, float, str, None]) -> Optional[int]:
    """
    Parse ``"10MB"``, ``"1.5G"``, ``"512"`` or a number into bytes.

    Raises:
        ValueError: For strings that are not sizes or negative numbers
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Size cannot be negative: {value}")
        return int(value)

    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


def format_size(num_bytes: Optional[int]) -> str:
    """Human-readable size, e.g. ``1.5MB``."""

    if not num_bytes:
        return "0B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    return f"{value:g}{units[index]}"


__all__ = [
    "PRESET_PATTERNS",
    "FILE_TYPES",
    "matches",
    "matches_any",
    "matches_search",
    "get_file_type",
    "get_extension",
    "parse_size",
    "format_size",
]

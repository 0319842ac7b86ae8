"""
Bounded in-process result cache with TTL expiry, pluggable eviction
and ETag tracking for conditional requests.
"""

import asyncio
import hashlib
import json
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .logger import logger


DEFAULT_MAX_SIZE = 100
DEFAULT_MAX_MEMORY = 50 * 1024 * 1024
DEFAULT_TTL = 300.0
DEFAULT_SWEEP_INTERVAL = 60.0


class EvictionPolicy(Enum):
    """Rule used to pick a victim when the cache is full."""

    LRU = "lru"
    LFU = "lfu"
    FIFO = "fifo"


def estimate_size(value: Any) -> int:
    """Approximate memory footprint as the length of the serialized payload."""

    try:
        return len(json.dumps(value, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return len(repr(value).encode("utf-8"))


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(k): _normalize(v)
            for k, v in sorted(value.items(), key=lambda item: str(item[0]))
            if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def make_cache_key(**params: Any) -> str:
    """
    Derive a fixed-length key from lookup parameters.

    Keys are canonicalized (sorted, ``None`` dropped) before hashing, so
    argument order never changes the key.
    """
    canonical = json.dumps(_normalize(params), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """One cached payload with its bookkeeping."""

    value: Any
    expires_at: float
    last_accessed: int
    inserted: int
    size_bytes: int
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResultCache:
    """
    Thread-safe bounded cache.

    ``len(cache) <= max_size`` and ``memory_used <= max_memory`` hold after
    every call; eviction runs before an entry is admitted.

    An expired entry that carries an ETag is a miss for ``get`` but is kept
    for ``fetch_conditional`` to revalidate. Such stale entries leave only
    through capacity eviction, which picks them before any fresh entry.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        max_memory: int = DEFAULT_MAX_MEMORY,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        policy: EvictionPolicy = EvictionPolicy.LRU,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if max_memory <= 0:
            raise ValueError("max_memory must be positive")

        self.max_size = max_size
        self.max_memory = max_memory
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self.policy = EvictionPolicy(policy)
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._etags: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._ticks = 0
        self._memory_used = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def memory_used(self) -> int:
        return self._memory_used

    def _tick(self) -> int:
        self._ticks += 1
        return self._ticks

    def _remove(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._memory_used -= entry.size_bytes
            self._etags.pop(key, None)
        return entry

    ####
    ##      CORE OPERATIONS
    #####
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                self._misses += 1
                if key not in self._etags:
                    self._remove(key)
                    logger.debug(f"Cache entry expired: {key[:12]}")
                return None

            entry.last_accessed = self._tick()
            entry.hit_count += 1
            self._hits += 1
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        etag: Optional[str] = None
    ) -> bool:
        """
        Store ``value`` under ``key``.

        Returns:
            False if the value alone exceeds ``max_memory`` and was not admitted
        """
        size = estimate_size(value)
        effective_ttl = self.default_ttl if ttl is None else ttl

        with self._lock:
            self._remove(key)

            if size > self.max_memory:
                logger.warning(
                    f"Not caching {key[:12]}: {size} bytes exceeds the {self.max_memory} byte budget"
                )
                return False

            while self._entries and (
                len(self._entries) + 1 > self.max_size
                or self._memory_used + size > self.max_memory
            ):
                self._evict_one()

            tick = self._tick()
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=self._clock() + effective_ttl,
                last_accessed=tick,
                inserted=tick,
                size_bytes=size
            )
            self._memory_used += size
            if etag:
                self._etags[key] = etag

            logger.debug(f"Cache set: {key[:12]}, ttl={effective_ttl}s, size={size}B")
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._remove(key) is not None

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._etags.clear()
            self._memory_used = 0
        logger.debug(f"Cache cleared: {count} entries removed")

    def _evict_one(self) -> None:
        """Remove one entry chosen by the configured policy. Caller holds the lock."""

        now = self._clock()
        candidates = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        candidates = candidates or list(self._entries)

        if self.policy is EvictionPolicy.LRU:
            victim = min(candidates, key=lambda k: self._entries[k].last_accessed)
        elif self.policy is EvictionPolicy.LFU:
            victim = min(
                candidates,
                key=lambda k: (self._entries[k].hit_count, self._entries[k].inserted)
            )
        else:
            victim = min(candidates, key=lambda k: self._entries[k].inserted)

        self._remove(victim)
        self._evictions += 1
        logger.debug(f"Evicted ({self.policy.value}): {victim[:12]}")

    def purge_expired(self) -> int:
        """Drop expired entries without an ETag; returns how many were removed."""

        with self._lock:
            now = self._clock()
            expired = [
                k for k, entry in self._entries.items()
                if entry.is_expired(now) and k not in self._etags
            ]
            for key in expired:
                self._remove(key)

        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "entries": len(self._entries),
                "memory_used": self._memory_used,
                "hit_rate": round(self._hits / lookups, 2) if lookups else 0.0,
            }

    ####
    ##      ETAG SUPPORT
    #####
    def get_etag(self, key: str) -> Optional[str]:
        return self._etags.get(key)

    def set_etag(self, key: str, etag: str) -> None:
        with self._lock:
            if key in self._entries:
                self._etags[key] = etag

    def _revalidated(self, key: str, ttl: Optional[float]) -> Optional[Any]:
        """Re-arm an entry after a 304 and count it as a hit."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
            entry.last_accessed = self._tick()
            entry.hit_count += 1
            self._hits += 1
            return entry.value

    async def fetch_conditional(
        self,
        key: str,
        fetch: Callable[[Dict[str, str]], Awaitable[httpx.Response]],
        parse: Callable[[httpx.Response], Any],
        ttl: Optional[float] = None
    ) -> Any:
        """
        Return a fresh cached value, revalidate a stale one, or fetch anew.

        A stale entry that still has an ETag is revalidated with
        ``If-None-Match``; a 304 reuses the stored payload.

        Args:
            key: Cache key
            fetch: Performs the request with the given extra headers
            parse: Turns a 200 response into the payload to cache
            ttl: Time-to-live for the stored payload
        """
        with self._lock:
            entry = self._entries.get(key)
            fresh = entry is not None and not entry.is_expired(self._clock())
            etag = self._etags.get(key) if entry is not None else None

        if fresh:
            value = self.get(key)
            if value is not None:
                return value

        headers = {"If-None-Match": etag} if etag else {}
        response = await fetch(headers)

        if response.status_code == 304:
            value = self._revalidated(key, ttl)
            if value is not None:
                logger.debug(f"ETag revalidated: {key[:12]}")
                return value
            # Entry was swept while the request was in flight
            response = await fetch({})

        value = parse(response)
        with self._lock:
            self._misses += 1
        self.set(key, value, ttl, etag=response.headers.get("etag"))
        return value

    ####
    ##      BACKGROUND SWEEP
    #####
    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.purge_expired()

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""

        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the periodic expiry sweep."""

        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()


__all__ = [
    "EvictionPolicy",
    "CacheEntry",
    "ResultCache",
    "estimate_size",
    "make_cache_key",
]

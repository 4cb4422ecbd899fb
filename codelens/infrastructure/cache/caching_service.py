"""Concrete implementation of the content-addressed Response Cache.

Entries are keyed by a SHA-256 fingerprint of the request content plus a
canonical JSON serialization of its options, and expire after a per-entry
TTL. Expired entries are dropped lazily on read and eagerly by a periodic
sweep (`start_auto_cleanup`).

Stored values are deep-copied on write and on read, so callers never share
or mutate a cached entry.

The cache is best-effort: any fault while fingerprinting degrades to a miss
and is logged, never raised.
"""

import asyncio
import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from codelens.domain.errors import CacheFault
from codelens.domain.interfaces.cache import CacheService
from codelens.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60  # 1 hour
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60  # 5 minutes


@dataclass(frozen=True)
class CacheEntry:
    """Internal representation of a cache entry with expiry."""
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


def _canonical_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not serializable")


def canonicalize_options(options: Optional[Mapping[str, Any]]) -> str:
    """Serializes options so that logically identical mappings compare equal.

    Raises:
        CacheFault: If the options cannot be serialized.
    """
    if options is None:
        return ""
    try:
        return json.dumps(
            options,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_canonical_default,
        )
    except (TypeError, ValueError) as e:
        raise CacheFault(f"Cannot canonicalize options: {e}") from e


class ResponseCache(CacheService):
    """In-memory TTL cache for backend responses."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the cache.

        Args:
            default_ttl: TTL in seconds applied when `set` gets no explicit ttl.
            clock: Monotonic time source in seconds.
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.RLock()
        logger.info(f"ResponseCache initialized (ttl={default_ttl}s)")

    def fingerprint(self, content: str, options: Optional[Mapping[str, Any]] = None) -> Optional[CacheKey]:
        """Returns the cache key for (content, options), or None on a cache fault."""
        try:
            digest = hashlib.sha256()
            digest.update(content.encode("utf-8"))
            digest.update(canonicalize_options(options).encode("utf-8"))
            return CacheKey(digest.hexdigest())
        except (CacheFault, AttributeError, UnicodeError) as e:
            logger.warning(f"Cache fingerprint failed, treating as miss: {e}")
            return None

    # --- CacheService Interface Implementation ---

    def get(self, content: str, options: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        return self.get_by_key(self.fingerprint(content, options))

    def get_by_key(self, key: Optional[CacheKey]) -> Optional[Any]:
        """Looks up an already computed fingerprint. Returns a private copy of the value."""
        if key is None:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug(f"Cache miss for key: {key[:16]}")
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f"Cache entry expired for key: {key[:16]}")
                return None
        logger.debug(f"Cache hit for key: {key[:16]}")
        return copy.deepcopy(entry.value)

    def set(
        self,
        content: str,
        value: Any,
        options: Optional[Mapping[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> None:
        key = self.fingerprint(content, options)
        if key is None:
            return

        entry = CacheEntry(
            value=copy.deepcopy(value),
            created_at=self._clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"Stored cache entry: key={key[:16]}, ttl={entry.ttl}s")

    def has(self, content: str, options: Optional[Mapping[str, Any]] = None) -> bool:
        return self.get(content, options) is not None

    def delete(self, content: str, options: Optional[Mapping[str, Any]] = None) -> None:
        key = self.fingerprint(content, options)
        if key is None:
            return
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entr(y/ies).")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cleared response cache.")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            size = len(self._entries)
        return {"size": size, "entries": size}

    # --- Periodic sweep ---

    def start_auto_cleanup(self, interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS) -> "asyncio.Task[None]":
        """Starts the periodic sweep on the running event loop.

        The caller owns the returned task and must cancel it on teardown.
        """
        if interval <= 0:
            raise ValueError("Cleanup interval must be positive.")

        async def sweep() -> None:
            while True:
                await asyncio.sleep(interval)
                self.cleanup()

        logger.debug(f"Starting cache sweep every {interval}s")
        return asyncio.get_running_loop().create_task(sweep())

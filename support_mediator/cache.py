"""
In-process key-value cache bounded by TTL and capacity.

The orchestrator uses two instances: a result cache (long TTL) and a
message-id cache (short TTL) used for duplicate suppression.
"""

import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """
    Thread-safe TTL cache with a maximum number of keys.

    Wraps ``cachetools.TLRUCache`` so each entry can carry its own TTL.
    When a new key is inserted at capacity, expired entries are purged
    first; if the cache is still full the least recently used entry is
    evicted. Re-setting a key refreshes its expiry.

    Example:
        cache = TTLCache(default_ttl=3600, max_keys=1000)
        cache.set("key", value)
        cache.get("key")
    """

    def __init__(
        self,
        default_ttl: float,
        max_keys: int,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        """
        Args:
            default_ttl: Seconds an entry lives unless overridden in set()
            max_keys: Maximum number of live entries
            clock: Monotonic time source (injected in tests)
            name: Label used in log messages
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")

        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self.name = name
        # Values are stored as (value, ttl) so expiry is computed per entry
        self._entries = TLRUCache(
            maxsize=max_keys,
            ttu=lambda _key, entry, now: now + entry[1],
            timer=clock,
        )
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``."""
        with self._lock:
            entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        return entry[0]

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (default TTL if None)."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        with self._lock:
            full = key not in self._entries and len(self._entries) >= self.max_keys
            self._entries[key] = (value, ttl)
        if full:
            logger.debug(f"{self.name}: at capacity ({self.max_keys}) when inserting {key!r}")

    def has(self, key: Hashable) -> bool:
        """True if ``key`` holds a live entry."""
        with self._lock:
            return key in self._entries

    def delete(self, key: Hashable) -> bool:
        """Remove ``key``. Returns True if it was live."""
        with self._lock:
            return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        """Return number of live entries."""
        with self._lock:
            self._entries.expire()
            return len(self._entries)

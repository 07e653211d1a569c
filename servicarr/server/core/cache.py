"""Small in-memory TTL cache for statistics reads."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

_MISSING = object()


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry.

    Expired entries are dropped lazily on read and by ``purge_expired``.
    Reads may return a value that predates a concurrent write until the
    entry expires or is invalidated.
    """

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            default_ttl: Lifetime of entries in seconds.
            clock: Monotonic time source, replaceable in tests.
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self._clock = clock
        self._items: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._items[key]
                return default
            return value

    def contains(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self._items[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [k for k in self._items if k.startswith(prefix)]
            for key in doomed:
                del self._items[key]
            return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [k for k, (_, expires_at) in self._items.items() if now >= expires_at]
            for key in doomed:
                del self._items[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

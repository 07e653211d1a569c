"""Consecutive-failure tracking for debounced up/down decisions."""

from __future__ import annotations

import threading
from collections.abc import Iterable


class FailureTracker:
    """Per-service consecutive raw failure counter.

    Shared by the scheduler and on-demand checks, so every access goes
    through a lock.

    Usage:
        tracker = FailureTracker()
        failures = tracker.update("plex", raw_ok=False)
        adjusted_ok = raw_ok or failures < tracker.threshold
    """

    def __init__(self, threshold: int = 2) -> None:
        """Initialize an empty tracker.

        Args:
            threshold: Consecutive raw failures at which a service is down.
        """
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def update(self, key: str, raw_ok: bool) -> int:
        """Record a raw result and return the new consecutive failure count."""
        with self._lock:
            if raw_ok:
                self._counts[key] = 0
                return 0
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
            return count

    def is_ok(self, raw_ok: bool, failures: int) -> bool:
        """Debounced decision for a raw result and its failure count."""
        return raw_ok or failures < self.threshold

    def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        with self._lock:
            self._counts.pop(key, None)

    def prune(self, valid_keys: Iterable[str]) -> None:
        """Drop counters for services that are no longer configured."""
        keep = set(valid_keys)
        with self._lock:
            for key in [k for k in self._counts if k not in keep]:
                del self._counts[key]

    def count(self, key: str) -> int:
        with self._lock:
            return self._counts.get(key, 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

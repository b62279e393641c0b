"""
Consecutive-failure tracking for upstream MCP connections.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class ConnectionHealth(Enum):
    """Health of an upstream connection as seen by the failure tracker."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    EVICTED = "evicted"


class FailureTracker:
    """
    Per-connection consecutive failure counter.

    Counts are keyed by connection key and updated atomically. The tracker
    only counts; the connection registry decides what to do once a count
    reaches max_failures.
    """

    def __init__(self, max_failures: int = 3):
        if max_failures <= 0:
            raise ValueError("max_failures must be positive")
        self.max_failures = max_failures
        self._counts: Dict[str, int] = {}
        self._evicted: Set[str] = set()
        self._lock = threading.Lock()

    def record_failure(self, key: str) -> int:
        """Increment the counter for key and return the new count."""
        with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        return count

    def record_success(self, key: str) -> None:
        with self._lock:
            self._counts.pop(key, None)

    def should_evict(self, count: int, max_failures: Optional[int] = None) -> bool:
        return count >= (max_failures or self.max_failures)

    def mark_evicted(self, key: str) -> None:
        """Reset the counter for key and remember that it was evicted."""
        with self._lock:
            self._counts.pop(key, None)
            self._evicted.add(key)

    def revive(self, key: str) -> None:
        with self._lock:
            self._evicted.discard(key)

    def count(self, key: str) -> int:
        with self._lock:
            return self._counts.get(key, 0)

    def health(self, key: str) -> ConnectionHealth:
        with self._lock:
            if key in self._evicted:
                return ConnectionHealth.EVICTED
            if self._counts.get(key, 0) > 0:
                return ConnectionHealth.DEGRADED
            return ConnectionHealth.HEALTHY

    def failed_connections(self) -> Dict[str, int]:
        """Snapshot of every key with a non-zero count."""
        with self._lock:
            return {key: count for key, count in self._counts.items() if count > 0}

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()
            self._evicted.clear()

"""
Connection registry for upstream MCP servers.

The registry keeps one reusable httpx client per (base URL, API key) pair
and evicts a connection once its consecutive failure count reaches the
configured maximum. It never caches tools, only connections.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

import httpx

from .config import ConnectionSettings
from .errors import ResponseTooLargeError
from .failures import ConnectionHealth, FailureTracker

logger = logging.getLogger(__name__)


def connection_key(base_url: str, api_key: str) -> str:
    """Cache key for a connection."""
    return f"{base_url}_{api_key or ''}"


def mask_key(base_url: str, api_key: str) -> str:
    """Connection key with the credential hidden, for logs and stats."""
    if not api_key:
        return f"{base_url}_"
    if len(api_key) > 8:
        return f"{base_url}_{api_key[:4]}***"
    return f"{base_url}_***"


class ConnectionHandle:
    """A reusable HTTP client bound to one upstream connection."""

    def __init__(
        self,
        key: str,
        base_url: str,
        api_key: str,
        settings: Optional[ConnectionSettings] = None,
    ):
        self.key = key
        self.base_url = base_url
        self.display_key = mask_key(base_url, api_key)
        self.settings = settings or ConnectionSettings()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.Client(headers=headers, timeout=self.settings.timeout)
        self.closed = False

    def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
    ) -> str:
        """
        POST a JSON payload and return the response body as text.

        The body is read in chunks and abandoned as soon as it exceeds
        max_bytes, or max_response_bytes when it is not given.

        Raises:
            TypeError: If the payload is not JSON serializable
            httpx.HTTPStatusError: On a 4xx/5xx response
            httpx.TransportError: On connection or timeout failures
            ResponseTooLargeError: If the body exceeds the buffer limit
        """
        limit = max_bytes if max_bytes is not None else self.settings.max_response_bytes
        request_timeout = timeout if timeout is not None else self.settings.timeout

        with self.client.stream(
            "POST", url, content=json.dumps(payload), timeout=request_timeout
        ) as response:
            response.raise_for_status()

            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > limit:
                raise ResponseTooLargeError(limit, self.display_key)

            buffer = bytearray()
            for chunk in response.iter_bytes():
                buffer.extend(chunk)
                if len(buffer) > limit:
                    raise ResponseTooLargeError(limit, self.display_key)

            encoding = response.encoding or "utf-8"
            return buffer.decode(encoding, errors="replace")

    def close(self) -> None:
        if not self.closed:
            self.client.close()
            self.closed = True

    def __str__(self) -> str:
        return f"ConnectionHandle({self.display_key})"


class ConnectionRegistry:
    """
    Thread-safe cache of ConnectionHandle objects.

    At most one handle exists per connection key. Failure counting is
    delegated to a FailureTracker keyed by the same connection key, so a
    connection that fails max_failures times in a row is dropped and the
    next get_or_create builds a fresh one.
    """

    def __init__(
        self,
        settings: Optional[ConnectionSettings] = None,
        tracker: Optional[FailureTracker] = None,
    ):
        self.settings = settings or ConnectionSettings()
        self.tracker = tracker or FailureTracker(self.settings.max_failures)
        self._handles: Dict[str, ConnectionHandle] = {}
        self._display: Dict[str, str] = {}
        self._lock = threading.Lock()

    def key_for(self, base_url: str, api_key: str) -> str:
        key = connection_key(base_url, api_key)
        with self._lock:
            self._display.setdefault(key, mask_key(base_url, api_key))
        return key

    def display_name(self, key: str) -> str:
        """Masked form of a connection key; never exposes the API key."""
        with self._lock:
            return self._display.get(key, "<unknown connection>")

    def get_or_create(self, base_url: str, api_key: str) -> ConnectionHandle:
        """
        Return the cached handle for (base_url, api_key), creating it if needed.

        Args:
            base_url: Upstream server URL
            api_key: Bearer token, may be empty

        Returns:
            The connection handle for this pair
        """
        key = self.key_for(base_url, api_key)
        with self._lock:
            handle = self._handles.get(key)
            if handle is None:
                handle = ConnectionHandle(key, base_url, api_key, self.settings)
                self._handles[key] = handle
                self.tracker.revive(key)
                logger.info(f"Created MCP connection: {handle.display_key}")
            return handle

    def get(self, key: str) -> Optional[ConnectionHandle]:
        with self._lock:
            return self._handles.get(key)

    def evict(self, key: str) -> bool:
        """
        Drop the handle for key and reset its failure counter.

        Safe to call for unknown keys and to call repeatedly.

        Returns:
            True if a handle was removed
        """
        with self._lock:
            handle = self._handles.pop(key, None)
        self.tracker.mark_evicted(key)
        if handle is None:
            return False
        handle.close()
        logger.info(f"Evicted MCP connection: {self.display_name(key)}")
        return True

    def refresh(self, key: str) -> bool:
        """Force the next call for key to use a new connection."""
        logger.info(f"Refreshing MCP connection: {self.display_name(key)}")
        return self.evict(key)

    def clear_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.close()
        self.tracker.clear()
        logger.info(f"Cleared {len(handles)} MCP connections")

    def report_failure(self, key: str, max_failures: Optional[int] = None) -> int:
        """
        Count a failure for key, evicting the connection at the threshold.

        Args:
            key: Connection key
            max_failures: Threshold for this call, defaults to the tracker's

        Returns:
            The failure count before any eviction reset
        """
        count = self.tracker.record_failure(key)
        logger.warning(
            f"MCP connection failure {count}/{max_failures or self.tracker.max_failures}: "
            f"{self.display_name(key)}"
        )
        if self.tracker.should_evict(count, max_failures):
            self.evict(key)
        return count

    def report_success(self, key: str) -> None:
        self.tracker.record_success(key)

    def state(self, key: str) -> ConnectionHealth:
        return self.tracker.health(key)

    def is_healthy(self) -> bool:
        """The registry is healthy when it holds at least one live connection."""
        with self._lock:
            return len(self._handles) > 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            keys = list(self._handles.keys())
        failed = self.tracker.failed_connections()
        return {
            "total_clients": len(keys),
            "connections": [self.display_name(key) for key in keys],
            "failed_connections": {self.display_name(key): count for key, count in failed.items()},
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
